# SPDX-License-Identifier: MIT

import sys

import colorama

import pmt.review as _review

_diff_colors = {
    _review.ADDED: colorama.Fore.GREEN,
    _review.REMOVED: colorama.Fore.RED,
    _review.UNCHANGED: "",
}


def format_elapsed(seconds):
    seconds = int(seconds)
    return "{:02}:{:02}".format(seconds // 60, seconds % 60)


class TerminalUI:
    def __init__(self, *, noconfirm=False):
        self.noconfirm = noconfirm
        self._title = None
        self._printed = 0  # Number of log lines that were already printed.
        self._status_shown = False
        self._tick = None

    # Returns None on end of input.
    def _ask(self, prompt):
        try:
            return input(
                "{}{}::{} {}".format(
                    colorama.Style.BRIGHT, colorama.Fore.BLUE, colorama.Style.RESET_ALL, prompt
                )
            )
        except EOFError:
            print()
            return None

    def _heading(self, text):
        print("{}{}{}".format(colorama.Style.BRIGHT, text, colorama.Style.RESET_ALL))

    def confirm(self, title, lines):
        self._heading(title)
        for line in lines:
            print("    " + line)
        if self.noconfirm:
            return True
        answer = self._ask("Proceed? [Y/n] ")
        if answer is None:
            return False
        return answer.strip().lower() in ("", "y", "yes")

    def select_one(self, title, options):
        self._heading(title)
        for i, option in enumerate(options):
            number = "{}{:>2}{}".format(colorama.Fore.CYAN, i + 1, colorama.Style.RESET_ALL)
            print("  {}) {}".format(number, option))
        while True:
            answer = self._ask("Enter a number (empty to cancel): ")
            if answer is None or not answer.strip():
                return None
            try:
                n = int(answer)
            except ValueError:
                continue
            if 1 <= n <= len(options):
                return n - 1

    def _print_recipe(self, new_text, old_text, show_diff):
        if show_diff:
            for line in _review.diff_texts(old_text, new_text):
                print(
                    "{}{}{}{}".format(
                        _diff_colors[line.tag], line.tag, line.text, colorama.Style.RESET_ALL
                    )
                )
        else:
            for n, line in enumerate(_review.split_lines(new_text)):
                print(
                    "{}{:>4}{} {}".format(colorama.Style.DIM, n + 1, colorama.Style.RESET_ALL, line)
                )

    def review_recipe(self, name, new_text, old_text=None):
        show_diff = old_text is not None
        if show_diff:
            self._heading("Changes to the PKGBUILD of {} since the last review:".format(name))
        else:
            self._heading("PKGBUILD of {}:".format(name))
        self._print_recipe(new_text, old_text, show_diff)
        if self.noconfirm:
            return True

        while True:
            if old_text is not None:
                answer = self._ask("Proceed with {}? [y]es/[n]o/[d]iff toggle ".format(name))
            else:
                answer = self._ask("Proceed with {}? [y/N] ".format(name))
            if answer is None:
                return False
            answer = answer.strip().lower()
            if answer in ("y", "yes"):
                return True
            if answer == "d" and old_text is not None:
                show_diff = not show_diff
                self._print_recipe(new_text, old_text, show_diff)
                continue
            return False

    def _status_line(self, text):
        return "{}{}{}".format(colorama.Style.DIM, text, colorama.Style.RESET_ALL)

    # Called at every poll. On a terminal, the last line is a status line that is
    # rewritten in place; otherwise the elapsed time is printed in 10 second steps.
    def show_progress(self, title, log_lines, finished, elapsed):
        if self._status_shown:
            print("\r\x1b[K", end="")
            self._status_shown = False
        if title != self._title:
            self._title = title
            self._tick = None
            self._heading(title)
        # A new run starts with a fresh log.
        if len(log_lines) < self._printed:
            self._printed = 0
        for line in log_lines[self._printed :]:
            print("  " + line)
        self._printed = len(log_lines)

        if finished:
            print(self._status_line("{} done after {}".format(title, format_elapsed(elapsed))))
            return
        status = self._status_line("{} [{}]".format(title, format_elapsed(elapsed)))
        if sys.stdout.isatty():
            print(status, end="", flush=True)
            self._status_shown = True
        elif int(elapsed) // 10 != self._tick:
            self._tick = int(elapsed) // 10
            print(status)
