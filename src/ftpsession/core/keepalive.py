"""
Control channel keep-alive
Sends NOOP on the idle control connection while a long data transfer runs
"""

import logging
import queue
import threading

from .errors import FTPError

logger = logging.getLogger(__name__)

NOOP_OK = 200
# replies that end a data transfer rather than answer a NOOP
TRANSFER_REPLY_CODES = (226, 250, 425, 426, 451, 551, 552)


class ControlKeepAlive:
    """
    Background NOOP sender for the duration of one data transfer

    The thread owns the control channel only between start() and stop();
    the transfer loop never touches the control channel in that window.
    Replies arrive strictly in order, so every reply the thread reads
    answers one NOOP, except the transfer completion, which can only
    arrive ahead of the reply to the NOOP just sent. That completion is
    handed back through `deferred`, no further NOOPs are sent, and the
    NOOP stays in `outstanding` for the caller to consume afterwards.
    """

    def __init__(self, client, interval, reply_timeout):
        """
        Args:
            client: FTPClient whose control channel is kept alive
            interval: Seconds of control-channel idleness before a NOOP
            reply_timeout: Seconds to wait for each NOOP reply
        """
        self.client = client
        self.interval = interval
        self.reply_timeout = reply_timeout
        self.deferred = queue.Queue()
        self.sent = 0
        self.acknowledged = 0
        self.completion_seen = False
        self.error = None
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def outstanding(self):
        """NOOPs sent whose reply has not been read yet"""
        return self.sent - self.acknowledged

    def start(self):
        self._thread = threading.Thread(target=self._run, name='ftp-keepalive', daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the timer and wait for an in-flight NOOP round trip to finish"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self):
        while not self.completion_seen and not self._stop_event.wait(self.interval):
            try:
                self._send_noop()
            except FTPError as e:
                logger.warning(f"Keep-alive failed, control connection considered broken: {e}")
                self.error = e
                return

    def _send_noop(self):
        control = self.client.control_conn
        with control.lock:
            if self._stop_event.is_set():
                return
            self.client._send_line('NOOP')
            self.sent += 1
            with control.reply_timeout(self.reply_timeout):
                reply = self.client._read_reply()

            if reply.code in TRANSFER_REPLY_CODES:
                logger.debug(f"Keep-alive read the transfer completion, deferring: {reply}")
                self.deferred.put(reply)
                self.completion_seen = True
                return

            if reply.code != NOOP_OK:
                logger.debug(f"NOOP answered with {reply}")
            self.acknowledged += 1
