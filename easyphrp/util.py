from datetime import datetime
import os
import click


MAX_ERROR_LOG_LENGTH = 4096
MAX_NUMERIC_MOD_ERRORS_TO_LOG = 250


def timestamped_echo(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    click.echo(f"{timestamp} - {message}")


def basename_wo_ext(p: str) -> str:
    """
    Return the basename without extensions, handling compressed inputs so that
    e.g. 'Dataset_msgfplus.tsv.gz' -> 'Dataset_msgfplus'.
    """
    name = os.path.basename(p or "")
    comp_suffixes = {
        ".gz",
        ".zst",
        ".bz2",
    }

    root, ext = os.path.splitext(name)
    if ext and ext.lower() in comp_suffixes:
        name = root

    stem, _ = os.path.splitext(name)
    return stem


class ErrorAccumulator:
    """
    Collects per-record problems of one processing run.

    Numeric mod mass errors are counted without limit but only the first
    MAX_NUMERIC_MOD_ERRORS_TO_LOG messages are kept. Other per-record errors are
    appended to a text log that stops growing at MAX_ERROR_LOG_LENGTH characters.
    """

    SUPPRESSION_MESSAGE = "Too many numeric mod mass results have been found; suppressing further logging"

    def __init__(self, max_log_length=MAX_ERROR_LOG_LENGTH, max_numeric_mod_errors=MAX_NUMERIC_MOD_ERRORS_TO_LOG):
        self.max_log_length = max_log_length
        self.max_numeric_mod_errors = max_numeric_mod_errors
        self.numeric_mod_error_count = 0
        self.numeric_mod_messages = []
        self.error_log = ""
        self.warnings = []

    def record_numeric_mod_error(self, message):
        self.numeric_mod_error_count += 1
        if self.numeric_mod_error_count <= self.max_numeric_mod_errors:
            self.numeric_mod_messages.append(message)
        elif self.numeric_mod_error_count == self.max_numeric_mod_errors + 1:
            self.numeric_mod_messages.append(self.SUPPRESSION_MESSAGE)

    def record_error(self, message):
        if len(self.error_log) < self.max_log_length:
            self.error_log += message + "\n"

    def record_warning(self, message):
        if len(self.warnings) < self.max_numeric_mod_errors:
            self.warnings.append(message)

    def has_errors(self):
        return self.numeric_mod_error_count > 0 or len(self.error_log) > 0

    def report(self):
        for message in self.warnings:
            timestamped_echo("Warning: %s" % message)

        if self.numeric_mod_error_count > 0:
            for message in self.numeric_mod_messages:
                timestamped_echo("Error: %s" % message)
            timestamped_echo("Error: Skipped %d results with unresolved numeric mod masses." % self.numeric_mod_error_count)

        if len(self.error_log) > 0:
            timestamped_echo("Error: Invalid Lines: \n" + self.error_log)
