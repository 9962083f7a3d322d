"""Single-key input for the terminal shell."""

import sys
import threading
from typing import Callable, Dict, FrozenSet, Optional
import logging

logger = logging.getLogger(__name__)

BOUND_KEYS: FrozenSet[str] = frozenset("rps[]q")

# Ctrl-C and Esc quit, space toggles recording
KEY_ALIASES: Dict[str, str] = {
    "\x03": "q",
    "\x1b": "q",
    " ": "r",
}

READ_TIMEOUT = 0.1


def normalize_key(raw: Optional[str]) -> Optional[str]:
    """Map a raw character to a shell command key, or None if it is unbound."""
    if not raw:
        return None
    key = KEY_ALIASES.get(raw, raw.lower())
    return key if key in BOUND_KEYS else None


class KeyboardInputHandler:
    """Read keypresses on a background thread and hand shell commands to a callback."""

    def __init__(self, callback: Callable[[str], bool],
                 read_key: Optional[Callable[[], Optional[str]]] = None):
        """Initialize keyboard handler.

        Args:
            callback: Takes a command key, returns False to end input
            read_key: Returns one raw character or None after a short wait;
                the terminal is read directly when None
        """
        self.callback = callback
        self.read_key = read_key or self._read_terminal_key
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._saved_tty = None

    def start(self) -> None:
        if self.running:
            return

        if self.read_key == self._read_terminal_key:
            self._enter_cbreak()
        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True, name="KeyboardInputThread")
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        self._restore_tty()
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            raw = self.read_key()
            key = normalize_key(raw)
            if key is None:
                if raw:
                    logger.debug(f"Ignoring unbound key: {raw!r}")
                continue
            logger.debug(f"Command key: '{key}'")
            if not self.callback(key):
                break
        self.running = False

    def _enter_cbreak(self) -> None:
        """Put a Unix terminal into cbreak mode for the lifetime of the handler."""
        if sys.platform == "win32" or not sys.stdin.isatty():
            return
        import termios
        import tty

        self._saved_tty = termios.tcgetattr(sys.stdin)
        tty.setcbreak(sys.stdin.fileno())

    def _restore_tty(self) -> None:
        if self._saved_tty is None:
            return
        import termios

        termios.tcsetattr(sys.stdin, termios.TCSADRAIN, self._saved_tty)
        self._saved_tty = None

    def _read_terminal_key(self) -> Optional[str]:
        if sys.platform == "win32":
            import msvcrt
            import time

            if msvcrt.kbhit():
                return msvcrt.getwch()
            time.sleep(READ_TIMEOUT)
            return None

        import select

        if not select.select([sys.stdin], [], [], READ_TIMEOUT)[0]:
            return None
        return sys.stdin.read(1)
