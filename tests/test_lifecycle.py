import json

import pytest

from netcup_claw.errors import EarlyExitError, LaunchError, PortInUseError
from netcup_claw.errors import StateFileError, TerminationError
from netcup_claw.lifecycle import read_log_tail
from netcup_claw.readiness import is_listening
from netcup_claw.state import LifecycleState, StateRecord

from conftest import FakeProcessControl


def test_status_without_record_is_stopped(make_manager, fake_process):
    mgr = make_manager(fake_process)

    st = mgr.status()

    assert st.state == LifecycleState.STOPPED
    assert st.pid == 0
    assert st.local_port == "18789"
    assert not mgr.store.path.exists()


def test_start_then_status_reports_running(make_manager, fake_process):
    mgr = make_manager(fake_process)

    mgr.start()
    st = mgr.status()

    assert (st.state, st.pid, st.local_port) == (LifecycleState.RUNNING, 4242, "18789")
    assert st.log_file == str(mgr.store.log_path)


def test_status_marks_dead_process_failed(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.start()

    fake_process.alive.clear()
    st = mgr.status()

    assert (st.state, st.pid, st.local_port) == (LifecycleState.FAILED, 4242, "18789")


def test_status_failed_transition_is_persisted(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.start()
    fake_process.alive.clear()
    mgr.status()

    on_disk = json.loads(mgr.store.path.read_text())
    assert on_disk["state"] == "failed"
    assert on_disk["pid"] == 4242

    # failed is not re-checked: a pid that comes back does not flip it
    fake_process.alive.add(4242)
    assert mgr.status().state == LifecycleState.FAILED


def test_start_twice_launches_once(make_manager, fake_process):
    mgr = make_manager(fake_process)

    first = mgr.start()
    second = mgr.start()

    assert len(fake_process.launches) == 1
    assert first.pid == second.pid == 4242


def test_start_is_idempotent_across_fresh_managers(make_manager, fake_process):
    make_manager(fake_process).start()
    make_manager(fake_process).start()

    assert len(fake_process.launches) == 1


def test_start_relaunches_when_recorded_pid_is_dead(make_manager):
    process = FakeProcessControl(pid=100)
    mgr = make_manager(process)
    mgr.start()

    process.alive.clear()
    process.pid = 200
    process.alive.add(200)
    st = mgr.start()

    assert len(process.launches) == 2
    assert st.pid == 200


def test_start_refuses_port_in_use(make_manager, fake_process, listener):
    mgr = make_manager(fake_process, local_port=listener, port_probe=is_listening)

    with pytest.raises(PortInUseError) as exc:
        mgr.start()

    assert "already in use" in str(exc.value)
    assert listener in str(exc.value)
    assert len(fake_process.launches) == 0
    assert not mgr.store.path.exists()


def test_start_launch_failure_records_failed(make_manager):
    process = FakeProcessControl(launch_error=LaunchError("kubectl: not found"))
    mgr = make_manager(process)

    with pytest.raises(LaunchError) as exc:
        mgr.start()

    assert "kubectl: not found" in str(exc.value)
    assert "18789" in str(exc.value)
    st = mgr.status()
    assert st.state == LifecycleState.FAILED
    assert st.pid == 0


def test_start_early_exit_includes_log_tail(make_manager):
    def write_log(log_file):
        with open(log_file, "a") as f:
            f.write("error: services \"openclaw\" not found\n")

    process = FakeProcessControl(pid=777, alive=False, on_launch=write_log)
    mgr = make_manager(process)

    with pytest.raises(EarlyExitError) as exc:
        mgr.start()

    msg = str(exc.value)
    assert "immediately" in msg
    assert "777" in msg
    assert 'services "openclaw" not found' in msg
    assert exc.value.pid == 777

    st = mgr.status()
    assert st.state == LifecycleState.FAILED
    assert st.pid == 777
    assert st.log_file == str(mgr.store.log_path)


def test_start_early_exit_without_log(make_manager):
    process = FakeProcessControl(pid=777, alive=False)
    mgr = make_manager(process)

    with pytest.raises(EarlyExitError) as exc:
        mgr.start()

    assert str(exc.value) == "port-forward process exited immediately (pid 777)"
    assert exc.value.log_tail == ""


def test_stop_without_record_does_nothing(make_manager, fake_process):
    mgr = make_manager(fake_process)

    mgr.stop()

    assert not mgr.store.path.exists()
    assert fake_process.terminated == []


def test_stop_terminates_and_keeps_log_path(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.start()

    mgr.stop()

    assert fake_process.terminated == [4242]
    st = mgr.status()
    assert st.state == LifecycleState.STOPPED
    assert st.pid == 0
    assert st.log_file == str(mgr.store.log_path)


def test_stop_is_idempotent(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.start()

    mgr.stop()
    mgr.stop()

    assert fake_process.terminated == [4242]


def test_stop_after_failed_start(make_manager):
    process = FakeProcessControl(pid=777, alive=False)
    mgr = make_manager(process)
    with pytest.raises(EarlyExitError):
        mgr.start()

    mgr.stop()

    assert process.terminated == [777]
    assert mgr.status().state == LifecycleState.STOPPED


def test_stop_surfaces_termination_error(make_manager):
    process = FakeProcessControl(terminate_error=TerminationError(4242, "Operation not permitted"))
    mgr = make_manager(process)
    mgr.start()

    with pytest.raises(TerminationError) as exc:
        mgr.stop()

    assert exc.value.pid == 4242
    assert mgr.status().state == LifecycleState.RUNNING


def test_record_round_trips_through_fresh_manager(make_manager, fake_process):
    written = make_manager(fake_process).start()

    read_back = make_manager(fake_process).status()

    assert read_back == written
    assert isinstance(read_back, StateRecord)


def test_corrupt_state_file_is_an_error(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.store.path.write_text("{not json")

    with pytest.raises(StateFileError):
        mgr.status()
    with pytest.raises(StateFileError):
        mgr.start()
    assert fake_process.launches == []


def test_log_tail_is_bounded_and_suffix_aligned(tmp_path):
    log = tmp_path / "pf.log"
    log.write_text("HEAD" + "x" * 10000 + "the last line")

    tail = read_log_tail(log, 100)

    assert len(tail.encode()) <= 100
    assert tail.endswith("the last line")
    assert "HEAD" not in tail


def test_log_tail_of_missing_or_empty_file(tmp_path):
    assert read_log_tail(tmp_path / "missing.log", 100) == ""
    empty = tmp_path / "empty.log"
    empty.write_text("")
    assert read_log_tail(empty, 100) == ""
    assert read_log_tail(empty, 0) == ""


def test_manager_log_tail_uses_budget(make_manager, fake_process):
    mgr = make_manager(fake_process)
    mgr.store.log_path.write_text("a" * 50 + "END")

    assert mgr.log_tail(3) == "END"
    assert mgr.log_tail().endswith("END")


def test_log_tail_does_not_split_multibyte_characters(tmp_path):
    log = tmp_path / "pf.log"
    log.write_text("中" * 100, encoding="utf-8")

    tail = read_log_tail(log, 100)

    assert len(tail.encode()) <= 100
    assert tail == "中" * 33


class _RestartedWhileChecking(FakeProcessControl):
    """Liveness check during which another invocation restarts the process."""

    def __init__(self, restart):
        super().__init__(pid=100)
        self.restart = restart

    def is_alive(self, pid):
        self.restart()
        return False


def test_status_keeps_record_written_by_concurrent_start(make_manager):
    first = make_manager(FakeProcessControl(pid=100))
    first.start()
    other = make_manager(FakeProcessControl(pid=200))

    st = make_manager(_RestartedWhileChecking(other.start)).status()

    assert (st.state, st.pid) == (LifecycleState.RUNNING, 200)
    on_disk = first.store.read()
    assert (on_disk.state, on_disk.pid) == (LifecycleState.RUNNING, 200)


def test_start_reports_whether_it_launched(make_manager, fake_process):
    mgr = make_manager(fake_process)

    mgr.start()
    assert mgr.launched is True

    mgr.start()
    assert mgr.launched is False
