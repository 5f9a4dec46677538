# SPDX-License-Identifier: MIT

# This matches the version comparison algorithm of libalpm (alpm_pkg_vercmp()),
# which is rpmvercmp() applied to the epoch, version and release parts in turn.


def _segment_end(s, n, numeric):
    if numeric:
        while n < len(s) and s[n].isdigit():
            n += 1
    else:
        while n < len(s) and s[n].isalpha():
            n += 1
    return n


def rpmvercmp(a, b):
    if a == b:
        return 0

    one = two = 0
    ptr1 = ptr2 = 0
    while one < len(a) and two < len(b):
        while one < len(a) and not a[one].isalnum():
            one += 1
        while two < len(b) and not b[two].isalnum():
            two += 1
        if one >= len(a) or two >= len(b):
            break

        # Separators of different lengths decide the comparison.
        if one - ptr1 != two - ptr2:
            return -1 if one - ptr1 < two - ptr2 else 1

        numeric = a[one].isdigit()
        ptr1 = _segment_end(a, one, numeric)
        ptr2 = _segment_end(b, two, numeric)
        seg1 = a[one:ptr1]
        seg2 = b[two:ptr2]

        # Numeric segments are always newer than alpha segments.
        if not seg2:
            return 1 if numeric else -1

        if numeric:
            seg1 = seg1.lstrip("0")
            seg2 = seg2.lstrip("0")
            if len(seg1) != len(seg2):
                return 1 if len(seg1) > len(seg2) else -1

        if seg1 != seg2:
            return 1 if seg1 > seg2 else -1

        one = ptr1
        two = ptr2

    if one >= len(a) and two >= len(b):
        return 0

    # A remaining alpha segment never beats an empty string, e.g. 1.0alpha < 1.0.
    if (one >= len(a) and not b[two].isalpha()) or (one < len(a) and a[one].isalpha()):
        return -1
    return 1


# Splits [epoch:]version[-release].
def parse_evr(evr):
    epoch = "0"
    n = 0
    while n < len(evr) and evr[n].isdigit():
        n += 1
    if n < len(evr) and evr[n] == ":":
        epoch = evr[:n] or "0"
        rest = evr[n + 1 :]
    else:
        rest = evr

    version, sep, release = rest.rpartition("-")
    if not sep:
        return (epoch, rest, None)
    return (epoch, version, release)


def vercmp(a, b):
    if a == b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    (epoch1, version1, release1) = parse_evr(a)
    (epoch2, version2, release2) = parse_evr(b)

    ret = rpmvercmp(epoch1, epoch2)
    if ret == 0:
        ret = rpmvercmp(version1, version2)
        if ret == 0 and release1 is not None and release2 is not None:
            ret = rpmvercmp(release1, release2)
    return ret


def satisfies(version, op, wanted):
    if op is None:
        return True
    cmp = vercmp(version, wanted)
    if op == "=":
        return cmp == 0
    if op == "<":
        return cmp < 0
    if op == "<=":
        return cmp <= 0
    if op == ">":
        return cmp > 0
    if op == ">=":
        return cmp >= 0
    raise ValueError("Unexpected version operator {}".format(op))
