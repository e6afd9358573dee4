import warnings
from pathlib import Path

import pytest

from revbench.errors import UsageParseDegraded
from revbench.runner.usage import REQUIRED_FIELDS, parse_usage_report, read_usage_report

GNU_TIME_OUTPUT = """\
\tCommand being timed: "make -j 8"
\tUser time (seconds): 1234.56
\tSystem time (seconds): 78.90
\tPercent of CPU this job got: 695%
\tElapsed (wall clock) time (h:mm:ss or m:ss): 3:08.41
\tAverage shared text size (kbytes): 0
\tAverage unshared data size (kbytes): 0
\tAverage stack size (kbytes): 0
\tAverage total size (kbytes): 0
\tMaximum resident set size (kbytes): 1048576
\tAverage resident set size (kbytes): 0
\tMajor (requiring I/O) page faults: 12
\tMinor (reclaiming a frame) page faults: 34567
\tVoluntary context switches: 890
\tInvoluntary context switches: 4321
\tSwaps: 0
\tFile system inputs: 16
\tFile system outputs: 2048
\tSocket messages sent: 0
\tSocket messages received: 0
\tSignals delivered: 0
\tPage size (bytes): 4096
\tExit status: 0
"""

BSD_TIME_OUTPUT = """\
        1.50 real         1.25 user         0.20 sys
           5242880  maximum resident set size
                 0  average shared memory size
               321  page reclaims
                 2  page faults
                 3  block input operations
                 4  block output operations
                10  voluntary context switches
                11  involuntary context switches
"""


class TestParseGnuReport:
    def test_parses_all_fields(self) -> None:
        report = parse_usage_report(GNU_TIME_OUTPUT)

        assert report.command == "make -j 8"
        assert report.user_cpu_seconds == pytest.approx(1234.56)
        assert report.sys_cpu_seconds == pytest.approx(78.90)
        assert report.percent_cpu == 695
        assert report.max_rss_kbytes == 1048576
        assert report.max_rss_bytes == 1048576 * 1024
        assert report.major_page_faults == 12
        assert report.minor_page_faults == 34567
        assert report.voluntary_context_switches == 890
        assert report.involuntary_context_switches == 4321
        assert report.file_system_inputs == 16
        assert report.file_system_outputs == 2048
        assert report.exit_status == 0
        assert report.degraded_fields == []

    def test_command_containing_colon_separator(self) -> None:
        text = '\tCommand being timed: "echo a: b"\n\tUser time (seconds): 0.01\n'
        report = parse_usage_report(text)
        assert report.command == "echo a: b"

    def test_unknown_keys_are_ignored(self) -> None:
        text = "\tSome new counter: 42\n" + GNU_TIME_OUTPUT
        report = parse_usage_report(text)
        assert report.degraded_fields == []
        assert report.user_cpu_seconds == pytest.approx(1234.56)

    def test_missing_required_field_is_zero_filled(self) -> None:
        text = "\n".join(
            line for line in GNU_TIME_OUTPUT.splitlines() if "Maximum resident" not in line
        )
        report = parse_usage_report(text)

        assert report.max_rss_bytes == 0
        assert report.degraded_fields == ["max_rss_kbytes"]
        assert report.user_cpu_seconds == pytest.approx(1234.56)

    def test_unparseable_value_degrades_only_that_field(self) -> None:
        text = GNU_TIME_OUTPUT.replace("User time (seconds): 1234.56", "User time (seconds): n/a")
        report = parse_usage_report(text)

        assert report.user_cpu_seconds == 0.0
        assert report.degraded_fields == ["user_cpu_seconds"]
        assert report.sys_cpu_seconds == pytest.approx(78.90)

    def test_empty_input_degrades_every_required_field(self) -> None:
        report = parse_usage_report("")
        assert report.degraded_fields == list(REQUIRED_FIELDS)

    def test_garbage_never_raises(self) -> None:
        report = parse_usage_report("\x00\x01 ::: \n: : :\nfoo bar baz\n")
        assert report.user_cpu_seconds == 0.0


class TestParseBsdReport:
    def test_bsd_time_l_output(self) -> None:
        report = parse_usage_report(BSD_TIME_OUTPUT)

        assert report.user_cpu_seconds == pytest.approx(1.25)
        assert report.sys_cpu_seconds == pytest.approx(0.20)
        assert report.max_rss_bytes == 5242880
        assert report.minor_page_faults == 321
        assert report.major_page_faults == 2
        assert report.file_system_inputs == 3
        assert report.file_system_outputs == 4
        assert report.voluntary_context_switches == 10
        assert report.involuntary_context_switches == 11
        assert report.degraded_fields == []


class TestReadUsageReport:
    def test_complete_report_emits_no_warning(self, tmp_path: Path) -> None:
        path = tmp_path / "usage.txt"
        path.write_text(GNU_TIME_OUTPUT, encoding="utf-8")

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            report = read_usage_report(path, job_name="build")

        assert report.max_rss_bytes == 1048576 * 1024

    def test_degraded_report_warns(self, tmp_path: Path) -> None:
        path = tmp_path / "usage.txt"
        path.write_text("\tUser time (seconds): 1.0\n", encoding="utf-8")

        with pytest.warns(UsageParseDegraded, match="build"):
            report = read_usage_report(path, job_name="build")

        assert report.user_cpu_seconds == pytest.approx(1.0)
        assert report.degraded_fields == ["sys_cpu_seconds", "max_rss_kbytes"]

    def test_missing_file_degrades_instead_of_raising(self, tmp_path: Path) -> None:
        with pytest.warns(UsageParseDegraded):
            report = read_usage_report(tmp_path / "absent.txt", job_name="ibd")

        assert report.degraded_fields == list(REQUIRED_FIELDS)
