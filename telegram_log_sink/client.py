"""
Telegram Log Sink - Remote Channel Client.

============================================================
PURPOSE
============================================================
Sends log batches to a Telegram chat through the Bot API.

OPERATIONS:
- create_message   -> sendMessage
- edit_message     -> editMessageText
- upload_document  -> sendDocument (multipart)
- get_me           -> getMe (token validation)

RESPONSE CLASSIFICATION:
- ok=true                 -> ChannelResponse
- error_code=401          -> AuthorizationError (fatal)
- parameters.retry_after  -> RateLimitedError (backoff)
- anything else ok=false  -> RemoteChannelError
- network failure         -> TransportError
- unreadable body         -> MalformedResponseError

Every call is bounded by a timeout and checks the shared
shutdown signal first. Cancelling the signal releases a
caller blocked on an in-flight request.

============================================================
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .config import SinkConfig, DEFAULT_API_BASE_URL, DEFAULT_REQUEST_TIMEOUT_SECONDS
from .exceptions import (
    AuthorizationError,
    MalformedResponseError,
    RateLimitedError,
    RemoteChannelError,
    SendCancelledError,
    TransportError,
)
from .formatting import PARSE_MODE
from .models import ChannelResponse


logger = logging.getLogger(__name__)


# ============================================================
# SHUTDOWN SIGNAL
# ============================================================

class ShutdownSignal:
    """
    Process-shutdown cancellation shared by every network call.

    Once cancelled, no further request is sent and callbacks
    registered with on_cancel run exactly once.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (right away if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Shutdown callback failed: {e}")

    def raise_if_cancelled(self, method: Optional[str] = None) -> None:
        if self._event.is_set():
            raise SendCancelledError("send cancelled: sink is shutting down", method=method)


# ============================================================
# IN-FLIGHT REQUEST
# ============================================================

class _InFlightRequest:
    """
    One HTTP call run on its own daemon thread.

    The caller waits for either the call or the shutdown signal,
    so cancelling releases it at once. An abandoned call ends on
    its own timeout; its session is closed by the cancellation.
    """

    def __init__(self, send: Callable[[], requests.Response], name: str):
        self._send = send
        self._finished = threading.Event()
        self._wake = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)
        self.response: Optional[requests.Response] = None
        self.error: Optional[Exception] = None

    def _run(self) -> None:
        try:
            self.response = self._send()
        except Exception as e:
            self.error = e
        finally:
            self._finished.set()
            self._wake.set()

    def run(self, shutdown: ShutdownSignal) -> bool:
        """
        Start the call and block until it finishes or shutdown fires.

        Returns True if the call finished.
        """
        self._thread.start()
        shutdown.on_cancel(self._wake.set)
        try:
            self._wake.wait()
        finally:
            shutdown.remove_callback(self._wake.set)
        return self._finished.is_set()


# ============================================================
# RESPONSE CLASSIFICATION
# ============================================================

def raise_for_response(response: ChannelResponse, method: Optional[str] = None) -> ChannelResponse:
    """Return the response if ok, otherwise raise the matching error."""
    if response.ok:
        return response

    if response.error_code == 401:
        raise AuthorizationError(
            error_code=response.error_code,
            description=response.description,
        )

    if response.retry_after and response.retry_after > 0:
        raise RateLimitedError(response.retry_after, description=response.description)

    raise RemoteChannelError(response.error_code, response.description, method=method)


# ============================================================
# TELEGRAM CHANNEL CLIENT
# ============================================================

class TelegramChannelClient:
    """
    Synchronous Bot API client bound to one chat (and topic).
    """

    def __init__(
        self,
        token: str,
        chat_id: int,
        topic_id: int = 0,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        api_base_url: str = DEFAULT_API_BASE_URL,
        session: Optional[requests.Session] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ):
        """
        Initialize the client.

        Args:
            token: Bot token
            chat_id: Target chat id
            topic_id: Forum topic id, 0 for none
            timeout_seconds: Per-request timeout
            api_base_url: Bot API root
            session: Optional requests session (created if omitted)
            shutdown: Shared shutdown signal
        """
        self._token = token
        self._chat_id = chat_id
        self._topic_id = topic_id
        self._timeout = timeout_seconds
        self._base_url = f"{api_base_url.rstrip('/')}/bot{token}"
        self._session = session or requests.Session()
        self._shutdown = shutdown or ShutdownSignal()
        self._shutdown.on_cancel(self.close)

    @classmethod
    def from_config(
        cls,
        config: SinkConfig,
        shutdown: Optional[ShutdownSignal] = None,
        session: Optional[requests.Session] = None,
    ) -> "TelegramChannelClient":
        return cls(
            token=config.token,
            chat_id=config.chat_id,
            topic_id=config.topic_id,
            timeout_seconds=config.request_timeout_seconds,
            api_base_url=config.api_base_url,
            session=session,
            shutdown=shutdown,
        )

    @property
    def shutdown(self) -> ShutdownSignal:
        return self._shutdown

    def close(self) -> None:
        """Close the HTTP session."""
        try:
            self._session.close()
        except Exception as e:
            logger.debug(f"Error closing HTTP session: {e}")

    # --------------------------------------------------------
    # Transport capabilities
    # --------------------------------------------------------

    def send_json(self, method: str, payload: Dict[str, Any]) -> ChannelResponse:
        """POST a JSON body to a Bot API method."""
        return self._post(method, json=payload)

    def send_multipart(
        self,
        method: str,
        fields: Dict[str, str],
        files: Dict[str, Tuple[str, bytes, str]],
    ) -> ChannelResponse:
        """POST a multipart form to a Bot API method."""
        return self._post(method, data=fields, files=files)

    def _post(self, method: str, **kwargs: Any) -> ChannelResponse:
        self._shutdown.raise_if_cancelled(method)
        url = f"{self._base_url}/{method}"

        request = _InFlightRequest(
            lambda: self._session.post(url, timeout=self._timeout, **kwargs),
            name=f"tglog-{method}",
        )
        if not request.run(self._shutdown):
            raise SendCancelledError(f"{method} aborted: sink is shutting down", method=method)

        e = request.error
        if isinstance(e, requests.exceptions.Timeout):
            self._shutdown.raise_if_cancelled(method)
            raise TransportError(
                f"{method} timed out after {self._timeout}s",
                method=method,
                original_exception=e,
            )
        if isinstance(e, requests.exceptions.RequestException):
            self._shutdown.raise_if_cancelled(method)
            raise TransportError(
                f"{method} failed: {self._redact(str(e))}",
                method=method,
                original_exception=e,
            )
        if e is not None:
            raise e
        response = request.response

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{method} returned a non-JSON body (HTTP {response.status_code})",
                method=method,
                original_exception=e,
            )

        logger.debug(f"{method} -> HTTP {response.status_code}")
        return ChannelResponse.from_payload(payload, method=method)

    def _redact(self, text: str) -> str:
        return text.replace(self._token, "***") if self._token else text

    # --------------------------------------------------------
    # Bot API operations
    # --------------------------------------------------------

    def _target(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": self._chat_id}
        if self._topic_id > 0:
            payload["message_thread_id"] = self._topic_id
        return payload

    def create_message(self, text: str) -> int:
        """
        Send a new message.

        Returns the new message id.
        """
        payload = self._target()
        payload.update({
            "text": text,
            "parse_mode": PARSE_MODE,
            "disable_web_page_preview": True,
        })

        response = raise_for_response(self.send_json("sendMessage", payload), "sendMessage")
        message_id = response.message_id
        if message_id is None:
            raise MalformedResponseError("sendMessage result has no message_id", method="sendMessage")
        return message_id

    def edit_message(self, message_id: int, text: str) -> None:
        """Replace the text of an existing message."""
        payload = {
            "chat_id": self._chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": PARSE_MODE,
            "disable_web_page_preview": True,
        }
        raise_for_response(self.send_json("editMessageText", payload), "editMessageText")

    def upload_document(self, content: str, filename: str, caption: str) -> None:
        """Send text content as a file attachment."""
        fields = {
            "chat_id": str(self._chat_id),
            "caption": caption,
        }
        if self._topic_id > 0:
            fields["message_thread_id"] = str(self._topic_id)
        files = {"document": (filename, content.encode("utf-8"), "text/plain")}

        raise_for_response(self.send_multipart("sendDocument", fields, files), "sendDocument")
        logger.info(f"Sent {len(content)} chars of logs as file {filename}")

    def get_me(self) -> str:
        """
        Validate the token.

        Returns the bot username.
        """
        response = self.send_json("getMe", {})
        if not response.ok:
            raise AuthorizationError(
                message=f"bot verification failed: {response.description}",
                error_code=response.error_code,
                description=response.description,
            )

        username = response.result.get("username")
        if not isinstance(username, str) or not username:
            raise MalformedResponseError("unable to get bot username", method="getMe")
        return username
