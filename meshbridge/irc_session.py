"""IRC session adapter: one server, one channel, plain channel text in and out."""
from __future__ import annotations

import logging
import socket
import ssl
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterator
from typing import Any

import irc.client
import irc.connection

from .events import ChannelMessage, IrcSendError, TransportConnectError

logger = logging.getLogger(__name__)


class IrcSession(ABC):
    """Abstract interface for the IRC side of the bridge."""

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def receive_events(self) -> Iterator[ChannelMessage]:
        """Lazy, non-restartable; ends when the connection is lost or closed."""
        ...

    @abstractmethod
    def send(self, text: str) -> None:
        """Post to the configured channel. Raises IrcSendError."""
        ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...


class IrcClientSession(IrcSession):
    """IrcSession on top of irc.client's Reactor.

    The reactor is pumped from receive_events(), so event handlers run on the
    consuming thread and only ever queue messages. PING/PONG is answered by
    the library itself.

    Writes from other threads hold the reactor mutex, which process_data
    also holds while reading, so the TLS socket is never used by two
    threads at once.
    """

    def __init__(self, config: dict[str, Any], reactor: irc.client.Reactor | None = None) -> None:
        irc_cfg = config.get('irc', {})
        self.server: str = irc_cfg.get('server', 'irc.libera.chat')
        self.port: int = irc_cfg.get('port', 6697)
        self.channel: str = irc_cfg.get('channel', '#meshtastic')
        self.nickname: str = irc_cfg.get('nickname', 'meshtastic-bridge')
        self.username: str | None = irc_cfg.get('username') or None
        self.realname: str | None = irc_cfg.get('realname') or None
        self.password: str | None = irc_cfg.get('password') or None
        self.use_tls: bool = irc_cfg.get('use_tls', True)
        self.tls_verify: bool = irc_cfg.get('tls_verify', True)
        self.connect_timeout: float = irc_cfg.get('connect_timeout', 30)

        self._reactor = reactor or irc.client.Reactor()
        self._connection = self._reactor.server()
        self._pending: deque[ChannelMessage] = deque()
        self._closed = False
        self.joined = False

        for event_type, handler in (
            ("welcome", self._on_welcome),
            ("join", self._on_join),
            ("pubmsg", self._on_pubmsg),
            ("nicknameinuse", self._on_nicknameinuse),
            ("disconnect", self._on_disconnect),
        ):
            self._connection.add_global_handler(event_type, handler)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _wrap_socket(self, sock: socket.socket) -> socket.socket:
        sock.settimeout(self.connect_timeout)
        if not self.use_tls:
            return sock
        context = ssl.create_default_context()
        if not self.tls_verify:
            logger.warning("[IRC] TLS certificate verification disabled")
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context.wrap_socket(sock, server_hostname=self.server)

    def connect(self) -> None:
        logger.info(f"[IRC] Connecting to {self.server}:{self.port} with TLS={self.use_tls}")
        try:
            self._connection.connect(
                self.server,
                self.port,
                self.nickname,
                password=self.password,
                username=self.username,
                ircname=self.realname,
                connect_factory=irc.connection.Factory(wrapper=self._wrap_socket),
            )
        except irc.client.ServerConnectionError as e:
            raise TransportConnectError(f"Failed to connect to {self.server}:{self.port}: {e}") from e

        # Reads are select()-driven from here on
        self._connection.socket.settimeout(None)
        logger.info(f"[IRC] Connected to {self.server}:{self.port}, joining {self.channel}")

    # ------------------------------------------------------------------
    # Reactor handlers
    # ------------------------------------------------------------------

    def _on_welcome(self, connection: Any, event: irc.client.Event) -> None:
        logger.info(f"[IRC] Registered as {connection.get_nickname()}")
        connection.join(self.channel)

    def _on_join(self, connection: Any, event: irc.client.Event) -> None:
        if self._is_own_nick(event.source.nick):
            self.joined = True
            logger.info(f"[IRC] Successfully joined {event.target}")

    def _on_nicknameinuse(self, connection: Any, event: irc.client.Event) -> None:
        # real_nickname only changes once the server accepts a nick, so build
        # the next candidate from the one just rejected
        rejected = event.arguments[0] if event.arguments else connection.get_nickname()
        new_nick = rejected + "_"
        logger.warning(f"[IRC] Nickname in use, trying {new_nick}")
        connection.nick(new_nick)

    def _on_disconnect(self, connection: Any, event: irc.client.Event) -> None:
        self.joined = False
        if not self._closed:
            reason = event.arguments[0] if event.arguments else ""
            logger.error(f"[IRC] Disconnected from {self.server}: {reason}")

    def _on_pubmsg(self, connection: Any, event: irc.client.Event) -> None:
        if event.target.lower() != self.channel.lower():
            return
        nick = event.source.nick
        if self._is_own_nick(nick):
            logger.debug("[IRC] Ignoring own message")
            return
        text = event.arguments[0] if event.arguments else ""
        logger.info(f"[IRC] Message from {nick}: {text}")
        self._pending.append(ChannelMessage(nickname=nick, text=text))

    def _is_own_nick(self, nick: str) -> bool:
        own = {self.nickname.lower()}
        current = getattr(self._connection, "real_nickname", None)
        if current:
            own.add(current.lower())
        return nick.lower() in own

    # ------------------------------------------------------------------
    # IrcSession
    # ------------------------------------------------------------------

    def receive_events(self) -> Iterator[ChannelMessage]:
        while not self._closed and self._connection.is_connected():
            self._reactor.process_once(timeout=0.2)
            while self._pending:
                yield self._pending.popleft()
        logger.debug("[IRC] Event stream ended")

    def send(self, text: str) -> None:
        line = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
        with self._reactor.mutex:
            if not self.is_connected:
                raise IrcSendError(f"Not joined to {self.channel}")
            try:
                self._connection.privmsg(self.channel, line)
            except (irc.client.MessageTooLong, irc.client.InvalidCharacters, irc.client.ServerNotConnectedError) as e:
                raise IrcSendError(f"Failed to send to {self.channel}: {e}") from e
            # send_raw disconnects instead of raising on socket errors
            if not self._connection.is_connected():
                raise IrcSendError(f"Connection lost while sending to {self.channel}")
        logger.info(f"[IRC] Sent to {self.channel}: {line}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._reactor.mutex:
            if self._connection.is_connected():
                try:
                    self._connection.quit("Bridge shutting down")
                    self._connection.close()
                except Exception as e:
                    logger.debug(f"[IRC] Error closing connection: {e}")

    @property
    def is_connected(self) -> bool:
        return self.joined and self._connection.is_connected()
