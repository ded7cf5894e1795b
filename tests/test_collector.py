"""Tests for the platform samplers."""

import json
import sys
from types import SimpleNamespace

import pytest

from hostwatch.collector import cpu, disk, memory, process_manager
from hostwatch.collector.base import (
    MetricKind,
    MemorySnapshot,
    ProcessManagerSnapshot,
    parse_process_table,
    parse_wmic_process_csv,
    run_command,
)
from hostwatch.collector.cpu import CpuSampler
from hostwatch.collector.disk import DiskSampler, parse_df_output, parse_du_output
from hostwatch.collector.manager import SamplerSet, enabled_kinds
from hostwatch.collector.memory import MemorySampler
from hostwatch.collector.process_manager import ProcessManagerSampler, parse_process_list
from hostwatch.config import MonitorConfig
from hostwatch.errors import CommandError

GIB = 1024 ** 3

PS_MEMORY_OUTPUT = """\
  PID COMMAND         %MEM %CPU COMMAND
 1234 node            12.5  3.1 node /srv/app/server.js --port 8080
  987 postgres         8.0  0.4 postgres: writer process
   42 broken
  abc weird           x.y   1.0 /usr/bin/weird
"""


def _fail(*_args, **_kwargs):
    raise CommandError(["ps"], "not found")


# ---------------------------------------------------------------------------
# Process table parsing
# ---------------------------------------------------------------------------

def test_parse_process_table_skips_header_and_short_rows():
    procs = parse_process_table(PS_MEMORY_OUTPUT, memory_col=2, cpu_col=3)
    assert [p.pid for p in procs] == [1234, 987, 0]
    node = procs[0]
    assert node.name == "node"
    assert node.memory_usage == 12.5
    assert node.cpu_usage == 3.1
    assert node.command == "node /srv/app/server.js --port 8080"
    weird = procs[2]
    assert weird.memory_usage == 0.0
    assert weird.cpu_usage == 1.0


def test_parse_process_table_reads_at_most_twenty_rows():
    rows = ["PID COMMAND %CPU %MEM COMMAND"]
    rows += [f"{i} proc{i} 1.0 2.0 /bin/proc{i}" for i in range(1, 40)]
    procs = parse_process_table("\n".join(rows), memory_col=3, cpu_col=2)
    assert len(procs) == 20
    assert procs[-1].pid == 20


WMIC_PROCESS_OUTPUT = (
    "\r\n\r\n"
    "Node,CommandLine,Name,PageFileUsage,ProcessId,WorkingSetSize\r\n"
    "HOST,C:\\Windows\\System32\\svchost.exe -k netsvcs -p,svchost.exe,2048,1100,10485760\r\n"
    "HOST,,System,0,4,155648\r\n"
    "HOST,\"C:\\Program Files\\nodejs\\node.exe\" server.js --a=1,--b=2,node.exe,90000,4242,209715200\r\n"
    "HOST,truncated\r\n"
)


def test_parse_wmic_process_csv_by_header_name():
    procs = parse_wmic_process_csv(WMIC_PROCESS_OUTPUT)
    assert [p.pid for p in procs] == [1100, 4, 4242]
    svchost = procs[0]
    assert svchost.name == "svchost.exe"
    assert svchost.memory_usage == 10485760
    assert svchost.cpu_usage == 0.0
    assert svchost.command == "C:\\Windows\\System32\\svchost.exe -k netsvcs -p"
    assert procs[2].command.endswith("server.js --a=1,--b=2")


def test_parse_wmic_process_csv_sorted_by_memory():
    procs = parse_wmic_process_csv(WMIC_PROCESS_OUTPUT, sort_by_memory=True)
    assert [p.name for p in procs] == ["node.exe", "svchost.exe", "System"]
    assert parse_wmic_process_csv("") == []


def test_run_command_returns_stdout():
    assert run_command([sys.executable, "-c", "print('hello')"]).strip() == "hello"


def test_run_command_missing_binary():
    with pytest.raises(CommandError):
        run_command(["__hostwatch_missing_binary__"])


def test_run_command_non_zero_exit():
    args = [sys.executable, "-c", "import sys; print('partial'); sys.exit(3)"]
    with pytest.raises(CommandError):
        run_command(args)
    assert run_command(args, check=False).strip() == "partial"


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

class TestMemorySampler:

    def test_memory_usage(self, monkeypatch):
        monkeypatch.setattr(
            memory.psutil, "virtual_memory",
            lambda: SimpleNamespace(total=16 * GIB, available=4 * GIB),
        )
        calls = []

        def fake_run(args, **_kwargs):
            calls.append(args)
            return PS_MEMORY_OUTPUT

        monkeypatch.setattr(memory, "run_command", fake_run)
        snapshot = MemorySampler(platform="linux").sample()

        assert isinstance(snapshot, MemorySnapshot)
        assert snapshot.kind is MetricKind.MEMORY
        assert snapshot.total == 16 * GIB
        assert snapshot.free == 4 * GIB
        assert snapshot.used == 12 * GIB
        assert snapshot.percentage == 75.0
        assert snapshot.formatted_total == "16 GB"
        assert snapshot.formatted_used == "12 GB"
        assert len(snapshot.top_processes) == 3
        assert snapshot.top_processes[0].memory_usage == 12.5
        assert calls[0][-1] == "--sort=-%mem"

    def test_percentage_rounded_to_two_decimals(self, monkeypatch):
        monkeypatch.setattr(
            memory.psutil, "virtual_memory",
            lambda: SimpleNamespace(total=3000, available=1000),
        )
        monkeypatch.setattr(memory, "run_command", lambda args, **kw: "")
        assert MemorySampler(platform="linux").sample().percentage == 66.67

    def test_process_listing_failure_degrades(self, monkeypatch):
        monkeypatch.setattr(
            memory.psutil, "virtual_memory",
            lambda: SimpleNamespace(total=8 * GIB, available=2 * GIB),
        )
        monkeypatch.setattr(memory, "run_command", _fail)
        snapshot = MemorySampler(platform="linux").sample()
        assert snapshot.top_processes == ()
        assert snapshot.percentage == 75.0

    def test_unsupported_platform_has_no_processes(self, monkeypatch):
        monkeypatch.setattr(memory, "run_command", _fail)
        assert MemorySampler(platform="sunos5").top_processes() == []

    def test_windows_lists_processes_by_working_set(self, monkeypatch):
        calls = []

        def fake_run(args, **_kwargs):
            calls.append(args)
            return WMIC_PROCESS_OUTPUT

        monkeypatch.setattr(memory, "run_command", fake_run)
        procs = MemorySampler(platform="win32").top_processes()
        assert calls[0][:2] == ["wmic", "process"]
        assert calls[0][-1] == "/format:csv"
        assert procs[0].name == "node.exe"
        assert procs[0].memory_usage == 209715200

    def test_counter_failure_degrades_to_zero(self, monkeypatch):
        def boom():
            raise OSError("no /proc")

        monkeypatch.setattr(memory.psutil, "virtual_memory", boom)
        monkeypatch.setattr(memory, "run_command", lambda args, **kw: "")
        snapshot = MemorySampler(platform="linux").sample()
        assert snapshot.total == 0
        assert snapshot.percentage == 0.0
        assert snapshot.formatted_total == "0 Bytes"

    def test_real_host(self):
        snapshot = MemorySampler().sample()
        assert snapshot.total > 0
        assert 0 <= snapshot.percentage <= 100


# ---------------------------------------------------------------------------
# CPU
# ---------------------------------------------------------------------------

def _core(idle, busy):
    return SimpleNamespace(
        user=busy, nice=0.0, system=0.0, idle=idle,
        iowait=0.0, irq=0.0, softirq=0.0, steal=0.0,
    )


class TestCpuSampler:

    def _sampler(self, monkeypatch, readings):
        it = iter(readings)
        monkeypatch.setattr(cpu.psutil, "cpu_times", lambda percpu=True: next(it))
        monkeypatch.setattr(cpu.psutil, "getloadavg", lambda: (1.5, 2.0, 1.8))
        monkeypatch.setattr(cpu, "run_command", lambda args, **kw: "")
        return CpuSampler(platform="linux")

    def test_first_call_is_zero(self, monkeypatch):
        sampler = self._sampler(monkeypatch, [[_core(100.0, 900.0)]])
        snapshot = sampler.sample()
        assert snapshot.percentage == 0.0
        assert snapshot.load_average == (1.5, 2.0, 1.8)

    def test_identical_counters_yield_zero(self, monkeypatch):
        reading = [_core(100.0, 50.0), _core(100.0, 50.0)]
        sampler = self._sampler(monkeypatch, [reading, reading])
        sampler.sample()
        assert sampler.sample().percentage == 0.0

    def test_delta_against_previous_call(self, monkeypatch):
        sampler = self._sampler(monkeypatch, [
            [_core(100.0, 100.0), _core(100.0, 100.0)],
            # +50 idle, +150 busy across cores -> 75% busy
            [_core(125.0, 175.0), _core(125.0, 175.0)],
            # +100 idle, +0 busy -> 0% busy
            [_core(175.0, 175.0), _core(175.0, 175.0)],
        ])
        assert sampler.sample().percentage == 0.0
        assert sampler.sample().percentage == 75.0
        assert sampler.sample().percentage == 0.0

    def test_top_processes_use_cpu_column(self, monkeypatch):
        sampler = self._sampler(monkeypatch, [[_core(1.0, 1.0)]])
        monkeypatch.setattr(
            cpu, "run_command",
            lambda args, **kw: "PID COMMAND %CPU %MEM COMMAND\n 7 make 98.0 1.2 make -j8\n",
        )
        procs = sampler.sample().top_processes
        assert procs[0].cpu_usage == 98.0
        assert procs[0].memory_usage == 1.2

    def test_windows_lists_processes_without_cpu(self, monkeypatch):
        monkeypatch.setattr(cpu, "run_command", lambda args, **kw: WMIC_PROCESS_OUTPUT)
        procs = CpuSampler(platform="win32").top_processes()
        assert [p.pid for p in procs] == [1100, 4, 4242]
        assert all(p.cpu_usage == 0.0 for p in procs)

    def test_load_average_failure(self, monkeypatch):
        def boom():
            raise OSError("unsupported")

        monkeypatch.setattr(cpu.psutil, "getloadavg", boom)
        assert CpuSampler(platform="linux").load_average() == (0.0, 0.0, 0.0)

    def test_real_host(self):
        sampler = CpuSampler()
        assert sampler.sample().percentage == 0.0
        second = sampler.sample()
        assert 0.0 <= second.percentage <= 100.0
        assert len(second.load_average) == 3


# ---------------------------------------------------------------------------
# Disk
# ---------------------------------------------------------------------------

DF_OUTPUT = """\
Filesystem        1B-blocks         Used    Available Use% Mounted on
/dev/sda1      536870912000 375809638400 161061273600  70% /
"""

DU_OUTPUT = """\
300G\t/usr
100G\t/var
4.0K\t/mnt
du: cannot read directory '/root': Permission denied
100G\t/home
500G\t/
"""


class TestDiskSampler:

    def test_parse_df_output(self):
        assert parse_df_output(DF_OUTPUT) == (536870912000, 375809638400, 161061273600)

    def test_parse_df_output_rejects_zero_total(self):
        with pytest.raises(ValueError):
            parse_df_output("/dev/sda1 0 0 0 0% /")
        with pytest.raises(ValueError):
            parse_df_output("Malformed output")

    def test_parse_du_output_shares_of_scanned_total(self):
        folders = parse_du_output(DU_OUTPUT, "/")
        assert [f.path for f in folders] == ["/usr", "/var", "/home", "/mnt"]
        assert folders[0].size == 300 * GIB
        scanned = 500 * GIB + 4096
        assert folders[0].percentage == round(300 * GIB / scanned * 100, 2)
        assert folders[-1].size == 4096

    def test_parse_du_output_limits_entries(self):
        lines = [f"{i}M\t/data/d{i}" for i in range(1, 30)]
        folders = parse_du_output("\n".join(lines), "/data")
        assert len(folders) == 20
        assert folders[0].path == "/data/d29"

    def test_parse_du_output_byte_sized_folders(self):
        output = "1.0K\t/Users/me/.ssh\n512B\t/Users/me/empty-ish\n0B\t/Users/me/empty\n2.0K\t/Users/me\n"
        folders = parse_du_output(output, "/Users/me")
        assert [(f.path, f.size) for f in folders] == [
            ("/Users/me/.ssh", 1024),
            ("/Users/me/empty-ish", 512),
            ("/Users/me/empty", 0),
        ]
        assert folders[1].percentage == 33.33

    def test_disk_usage(self, monkeypatch):
        calls = []

        def fake_run(args, **_kwargs):
            calls.append(args)
            return DF_OUTPUT if args[0] == "df" else DU_OUTPUT

        monkeypatch.setattr(disk, "run_command", fake_run)
        snapshot = DiskSampler(["/"], platform="linux").sample()
        assert snapshot.path == "/"
        assert snapshot.total == 536870912000
        assert snapshot.percentage == 70.0
        assert snapshot.formatted_total == "500 GB"
        assert snapshot.formatted_used == "350 GB"
        assert len(snapshot.top_folders) == 4
        assert calls[0] == ["df", "-B1", "/"]

    def test_zero_total_gives_zero_percentage(self, monkeypatch):
        monkeypatch.setattr(disk, "run_command", lambda args, **kw: "/dev/sda1 0 0 0 0% /")
        snapshot = DiskSampler(platform="linux").sample()
        assert snapshot.total == 0
        assert snapshot.percentage == 0

    def test_command_failure_degrades(self, monkeypatch):
        monkeypatch.setattr(disk, "run_command", _fail)
        snapshot = DiskSampler(platform="linux").sample()
        assert (snapshot.total, snapshot.used, snapshot.free) == (0, 0, 0)
        assert snapshot.top_folders == ()
        assert snapshot.formatted_free == "0 Bytes"

    def test_darwin_uses_kilobyte_blocks(self, monkeypatch):
        monkeypatch.setattr(
            disk, "run_command",
            lambda args, **kw: "Filesystem 1024-blocks Used Available\n/dev/disk1 1000 250 750 25% /\n"
            if args[0] == "df" else "",
        )
        snapshot = DiskSampler(platform="darwin").sample()
        assert snapshot.total == 1000 * 1024
        assert snapshot.percentage == 25.0

    def test_windows_usage_without_folders(self, monkeypatch):
        monkeypatch.setattr(
            disk, "run_command",
            lambda args, **kw: "\r\nFreeSpace=161061273600\r\n\r\nSize=500107862016\r\n",
        )
        snapshot = DiskSampler(platform="win32").sample()
        assert snapshot.total == 500107862016
        assert snapshot.used == 500107862016 - 161061273600
        assert snapshot.percentage == 67.79
        assert snapshot.formatted_total == "465.76 GB"
        assert snapshot.top_folders == ()

    def test_first_disk_path_is_monitored(self, monkeypatch):
        sampler = DiskSampler(["/home", "/var"], platform="linux")
        assert sampler.path == "/home"
        sampler.set_paths(["/srv"])
        assert sampler.path == "/srv"


# ---------------------------------------------------------------------------
# Process manager
# ---------------------------------------------------------------------------

PM2_JLIST = [
    {
        "name": "api",
        "pid": 4242,
        "pm2_env": {"status": "online", "pm_uptime": 1_000_000, "restart_time": 3},
        "monit": {"cpu": 12.5, "memory": 104857600},
    },
    {"name": "worker", "pm2_env": {}, "monit": None},
]


class TestProcessManagerSampler:

    def test_parse_process_list(self):
        procs = parse_process_list(PM2_JLIST, now_ms=1_000_000 + 150_000)
        api, worker = procs
        assert api.name == "api"
        assert api.pid == 4242
        assert api.status == "online"
        assert api.cpu == 12.5
        assert api.memory == 104857600
        assert api.restarts == 3
        assert api.uptime == "2m 30s"
        assert worker.pid == 0
        assert worker.status == "unknown"
        assert worker.cpu == 0
        assert worker.memory == 0
        assert worker.restarts == 0
        assert worker.uptime == "0s"

    def test_missing_pm2_is_empty(self, monkeypatch):
        monkeypatch.setattr(process_manager.shutil, "which", lambda name: None)
        monkeypatch.setattr(process_manager, "run_command", _fail)
        snapshot = ProcessManagerSampler().sample()
        assert isinstance(snapshot, ProcessManagerSnapshot)
        assert snapshot.processes == ()
        assert not snapshot

    def test_jlist(self, monkeypatch):
        monkeypatch.setattr(process_manager.shutil, "which", lambda name: "/usr/bin/pm2")
        monkeypatch.setattr(process_manager, "run_command", lambda args, **kw: json.dumps(PM2_JLIST))
        snapshot = ProcessManagerSampler().sample()
        assert [p.name for p in snapshot.processes] == ["api", "worker"]
        assert snapshot.to_payload()[0]["restarts"] == 3

    def test_invalid_json_is_empty(self, monkeypatch):
        monkeypatch.setattr(process_manager.shutil, "which", lambda name: "/usr/bin/pm2")
        monkeypatch.setattr(process_manager, "run_command", lambda args, **kw: "not json")
        assert ProcessManagerSampler().sample().processes == ()

    def test_logs(self, monkeypatch):
        calls = []

        def fake_run(args, **_kwargs):
            calls.append(args)
            return "line one\nline two\n"

        monkeypatch.setattr(process_manager, "run_command", fake_run)
        sampler = ProcessManagerSampler()
        assert sampler.logs("api", 50) == "line one\nline two\n"
        assert calls[0] == ["pm2", "logs", "api", "--lines", "50", "--nostream"]
        sampler.logs()
        assert calls[1] == ["pm2", "logs", "--lines", "100", "--nostream"]

    def test_logs_failure_is_empty(self, monkeypatch):
        monkeypatch.setattr(process_manager, "run_command", _fail)
        assert ProcessManagerSampler().logs("api") == ""


# ---------------------------------------------------------------------------
# Sampler set
# ---------------------------------------------------------------------------

def test_enabled_kinds_keeps_collection_order():
    config = MonitorConfig(enable_cpu=False, enable_processmanager=False)
    assert enabled_kinds(config) == [MetricKind.MEMORY, MetricKind.DISK]
    assert enabled_kinds(MonitorConfig()) == list(MetricKind)


def test_sampler_set_dispatches_by_kind(monkeypatch):
    samplers = SamplerSet(MonitorConfig(disk_paths=["/data"]))
    monkeypatch.setattr(process_manager.shutil, "which", lambda name: None)
    assert isinstance(samplers.sample("processmanager"), ProcessManagerSnapshot)
    assert samplers.disk.path == "/data"
    samplers.reconfigure(MonitorConfig(disk_paths=["/srv"]))
    assert samplers.disk.path == "/srv"
    with pytest.raises(ValueError):
        samplers.sample("network")
