"""
Forwarding of container output to the operator's log.
"""
import logging
import threading
from typing import Optional

import docker

logger = logging.getLogger(__name__)


class ContainerLogStream:
    """
    Follows a container's stdout and stderr and forwards every line to a
    logger, prefixed with a tag such as the image name.
    """
    def __init__(self,
                 client: docker.DockerClient,
                 container_id: str,
                 prefix: Optional[str] = None,
                 log: Optional[logging.Logger] = None):
        """
        Initializes the log stream.

        :param client: Runtime client used to attach to the container.
        :param container_id: Container to follow.
        :param prefix: Tag shown in front of each forwarded line.
        :param log: Logger receiving the lines.
        """
        self.client = client
        self.container_id = container_id
        self.prefix = f"[{prefix}] " if prefix else ""
        self.log = log or logger
        self.started = threading.Event()
        self.finished = threading.Event()
        self.error: Optional[BaseException] = None
        self._closed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ContainerLogStream":
        """
        Attaches in a background thread. Frames are forwarded as they arrive
        until the container exits or the stream is closed.
        """
        self._thread = threading.Thread(
            target=self._run, name=f"logs-{self.container_id[:12]}", daemon=True
        )
        self._thread.start()
        return self

    def wait_started(self, timeout: Optional[float] = None) -> bool:
        """
        Waits until the subscription to the container's output is open.
        This says the process is alive, not that it is ready to serve.
        """
        return self.started.wait(timeout)

    def follow(self) -> None:
        """
        Forwards output in the calling thread until the container exits.
        """
        self._run()
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        """
        Stops forwarding output. Frames arriving afterwards are dropped; the
        attach connection itself is only released when the container exits,
        since the runtime client gives no handle to abort a demuxed attach.
        """
        self._closed.set()

    def _run(self) -> None:
        try:
            frames = self.client.api.attach(
                self.container_id, stdout=True, stderr=True, stream=True, logs=True, demux=True
            )
            self.started.set()
            for frame in frames:
                if self._closed.is_set():
                    break
                self._forward(frame)
        except Exception as e:
            self.error = e
            self.log.error("%sLog stream failed: %s", self.prefix, e)
        finally:
            self.finished.set()

    def _forward(self, frame) -> None:
        payloads = [p for p in frame if p is not None] if isinstance(frame, tuple) else []
        if not payloads:
            self.log.error("%s%r", self.prefix, frame)
            return
        for payload in payloads:
            text = payload.decode('utf-8', errors='replace')
            for line in text.splitlines():
                self.log.info("%s%s", self.prefix, line.rstrip())
