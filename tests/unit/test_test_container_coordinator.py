# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Unit tests for the test container coordinator and its handshake wait.
"""
import os
import subprocess
import sys
import threading
import time

import pytest

from depcon.errors import (
    HandshakeParseError,
    HandshakeTimeoutError,
    TestContainerWorkerError as WorkerError,
    WaitCancelledError,
)
from depcon.MANAGERS.test_container_coordinator import WORKER_MODULE
from depcon.MANAGERS.test_container_coordinator import TestContainerCoordinator as Coordinator
from depcon.MODELS.test_container import TestContainer as Sidecar
from depcon.MODELS.test_container import TestContainerHandshake as Handshake
from depcon.PARSERS.handshake_parser import HandshakeParser

POSTGRES = Sidecar(name="postgresql")
REDIS = Sidecar(name="redis")


class FakeProcess:
    def __init__(self, returncode=None):
        self.pid = os.getpid()
        self.returncode = returncode

    def poll(self):
        return self.returncode


class FakeLauncher:
    """
    Stands in for the worker process. ``mode`` is one of ``write`` (start a
    container and write the handshake shortly after), ``die``, ``hang`` or
    ``garbage``.
    """
    def __init__(self, client, mode="write", delay=0.05):
        self.client = client
        self.mode = mode
        self.delay = delay
        self.launched = []

    def launch(self, sidecar, handshake_file, log_file):
        self.launched.append(sidecar.name)
        if self.mode == "die":
            log_file.write_text("Traceback...\nUnknownTestContainerError: Do not know how to handle x\n")
            return FakeProcess(returncode=1)
        if self.mode == "write":
            threading.Timer(self.delay, self._write, args=(sidecar, handshake_file)).start()
        if self.mode == "garbage":
            handshake_file.write_text("")
        return FakeProcess()

    def _write(self, sidecar, handshake_file):
        container = self.client.containers.run(f"{sidecar.name}:latest", detach=True)
        key = f"{sidecar.name.upper()}_URL"
        HandshakeParser.write(handshake_file, Handshake(
            container_id=container.id, environment={key: f"{sidecar.name}://localhost:1/"},
        ))


class SleepingLauncher:
    """
    Spawns real processes that look like workers but never write a
    handshake. Names in ``dead`` get a worker that has already exited.
    """
    def __init__(self, dead=()):
        self.dead = set(dead)
        self.processes = []

    def launch(self, sidecar, handshake_file, log_file):
        if sidecar.name in self.dead:
            return FakeProcess(returncode=1)
        process = subprocess.Popen(
            [sys.executable, "-c", "import time; time.sleep(30)", WORKER_MODULE, sidecar.name]
        )
        self.processes.append(process)
        return process

    def kill_all(self):
        for process in self.processes:
            if process.poll() is None:
                process.kill()
                process.wait()


@pytest.fixture
def sleeping_launcher():
    launcher = SleepingLauncher()
    yield launcher
    launcher.kill_all()


def coordinator(client, tmp_path, launcher, timeout=5.0):
    return Coordinator(client, tmp_path, launcher=launcher, timeout=timeout, poll_interval=0.02)


class TestTestContainerCoordinator:
    """Tests for TestContainerCoordinator."""

    def test_start_spawns_worker_and_returns_environment(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client)
        env = coordinator(docker_client, tmp_path, launcher).start(POSTGRES)

        assert env == {"POSTGRESQL_URL": "postgresql://localhost:1/"}
        assert launcher.launched == ["postgresql"]
        assert POSTGRES.pid_file(tmp_path).read_text() == str(os.getpid())

    def test_running_sidecar_is_reused(self, docker_client, tmp_path):
        container = docker_client.containers.run("postgres", detach=True)
        HandshakeParser.write(POSTGRES.handshake_file(tmp_path), Handshake(
            container_id=container.id, environment={"DATABASE_URL": "postgres://x"},
        ))
        launcher = FakeLauncher(docker_client)

        env = coordinator(docker_client, tmp_path, launcher).start(POSTGRES)

        assert env == {"DATABASE_URL": "postgres://x"}
        assert launcher.launched == []

    def test_stale_handshake_is_replaced(self, docker_client, tmp_path):
        container = docker_client.containers.run("postgres", detach=True)
        container.stop()
        HandshakeParser.write(POSTGRES.handshake_file(tmp_path), Handshake(
            container_id=container.id, environment={"DATABASE_URL": "postgres://old"},
        ))
        launcher = FakeLauncher(docker_client)

        env = coordinator(docker_client, tmp_path, launcher).start(POSTGRES)

        assert launcher.launched == ["postgresql"]
        assert env == {"POSTGRESQL_URL": "postgresql://localhost:1/"}

    def test_malformed_leftover_is_treated_as_stale(self, docker_client, tmp_path):
        POSTGRES.handshake_file(tmp_path).write_text("")
        launcher = FakeLauncher(docker_client)
        coordinator(docker_client, tmp_path, launcher).start(POSTGRES)
        assert launcher.launched == ["postgresql"]

    def test_malformed_fresh_handshake_raises(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client, mode="garbage")
        with pytest.raises(HandshakeParseError):
            coordinator(docker_client, tmp_path, launcher).start(POSTGRES)

    def test_worker_death_ends_wait(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client, mode="die")
        with pytest.raises(WorkerError) as excinfo:
            coordinator(docker_client, tmp_path, launcher).start(Sidecar(name="oracle"))
        assert excinfo.value.exit_code == 1
        assert "Do not know how to handle" in excinfo.value.log_tail

    def test_timeout(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client, mode="hang")
        started = time.monotonic()
        with pytest.raises(HandshakeTimeoutError):
            coordinator(docker_client, tmp_path, launcher, timeout=0.2).start(POSTGRES)
        assert time.monotonic() - started < 5

    def test_cancel(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client, mode="hang")
        coord = coordinator(docker_client, tmp_path, launcher, timeout=60)
        threading.Timer(0.1, coord.cancel).start()
        with pytest.raises(WaitCancelledError):
            coord.start(POSTGRES)

    def test_cancel_terminates_spawned_workers(self, docker_client, tmp_path, sleeping_launcher):
        coord = coordinator(docker_client, tmp_path, sleeping_launcher, timeout=60)
        threading.Timer(0.2, coord.cancel).start()

        with pytest.raises(WaitCancelledError):
            coord.start_all([POSTGRES, REDIS])

        assert len(sleeping_launcher.processes) == 2
        assert all(p.poll() is not None for p in sleeping_launcher.processes)
        assert not POSTGRES.pid_file(tmp_path).exists()
        assert not REDIS.pid_file(tmp_path).exists()

    def test_failed_sidecar_terminates_the_others(self, docker_client, tmp_path, sleeping_launcher):
        sleeping_launcher.dead = {"postgresql"}
        coord = coordinator(docker_client, tmp_path, sleeping_launcher, timeout=60)

        with pytest.raises(WorkerError):
            coord.start_all([POSTGRES, REDIS])

        [redis_worker] = sleeping_launcher.processes
        assert redis_worker.poll() is not None

    def test_wait_after_cancel_can_start_again(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client, mode="hang")
        coord = coordinator(docker_client, tmp_path, launcher, timeout=60)
        threading.Timer(0.1, coord.cancel).start()
        with pytest.raises(WaitCancelledError):
            coord.start(POSTGRES)

        launcher.mode = "write"
        assert coord.start(POSTGRES) == {"POSTGRESQL_URL": "postgresql://localhost:1/"}

    def test_start_all_collects_each_sidecar(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client)
        envs = coordinator(docker_client, tmp_path, launcher).start_all([POSTGRES, REDIS])
        assert envs == {
            "postgresql": {"POSTGRESQL_URL": "postgresql://localhost:1/"},
            "redis": {"REDIS_URL": "redis://localhost:1/"},
        }

    def test_stop_removes_container(self, docker_client, tmp_path):
        launcher = FakeLauncher(docker_client)
        coord = coordinator(docker_client, tmp_path, launcher)
        coord.start(POSTGRES)
        container_id = HandshakeParser.parse(POSTGRES.handshake_file(tmp_path)).container_id
        container = docker_client.containers.get(container_id)

        assert coord.stop(POSTGRES) is True
        assert container.removed
        assert docker_client.containers.list() == []
        assert not POSTGRES.pid_file(tmp_path).exists()

    def test_stop_never_started(self, docker_client, tmp_path):
        assert coordinator(docker_client, tmp_path, FakeLauncher(docker_client)).stop(REDIS) is False
