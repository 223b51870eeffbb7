"""Package-manager command builder and the subprocess runner behind install jobs."""

import logging
import re
import subprocess
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from application.messages import Cancelled
from application.ports import CancelSignal, ProcessError
from core import InstallSource

logger = logging.getLogger("hoard.process")

_PACKAGE_NAME = re.compile(r"^[A-Za-z0-9@][A-Za-z0-9._+/@:-]*$")

_COMMANDS: Dict[InstallSource, Dict[str, List[str]]] = {
    InstallSource.CARGO: {
        "install": ["cargo", "install", "{name}"],
        "uninstall": ["cargo", "uninstall", "{name}"],
        "update": ["cargo", "install", "--force", "{name}"],
    },
    InstallSource.PIP: {
        "install": ["pip", "install", "--user", "{name}"],
        "uninstall": ["pip", "uninstall", "-y", "{name}"],
        "update": ["pip", "install", "--user", "--upgrade", "{name}"],
    },
    InstallSource.NPM: {
        "install": ["npm", "install", "-g", "{name}"],
        "uninstall": ["npm", "uninstall", "-g", "{name}"],
        "update": ["npm", "update", "-g", "{name}"],
    },
    InstallSource.APT: {
        "install": ["sudo", "-n", "apt", "install", "-y", "{name}"],
        "uninstall": ["sudo", "-n", "apt", "remove", "-y", "{name}"],
        "update": ["sudo", "-n", "apt", "install", "--only-upgrade", "-y", "{name}"],
    },
    InstallSource.BREW: {
        "install": ["brew", "install", "{name}"],
        "uninstall": ["brew", "uninstall", "{name}"],
        "update": ["brew", "upgrade", "{name}"],
    },
    InstallSource.FLATPAK: {
        "install": ["flatpak", "install", "-y", "{name}"],
        "uninstall": ["flatpak", "uninstall", "-y", "{name}"],
        "update": ["flatpak", "update", "-y", "{name}"],
    },
    InstallSource.GO: {
        "install": ["go", "install", "{name}@latest"],
        "update": ["go", "install", "{name}@latest"],
    },
}


def validate_package_name(name: str) -> bool:
    return bool(name) and len(name) <= 214 and bool(_PACKAGE_NAME.match(name)) and ".." not in name


def install_command(action: str, name: str, source: InstallSource) -> Optional[List[str]]:
    """argv for ``action`` (install/uninstall/update) of ``name``; None when unsupported."""
    template = _COMMANDS.get(source, {}).get(action)
    if template is None or not validate_package_name(name):
        return None
    if source is InstallSource.GO and "/" not in name:
        # go install needs a module path, not a bare binary name
        return None
    return [part.replace("{name}", name) for part in template]


class SubprocessRunner:
    def __init__(self, poll_interval: float = 0.2):
        self.poll_interval = poll_interval

    def run(
        self,
        argv: Sequence[str],
        token: CancelSignal,
        on_line: Optional[Callable[[str], None]] = None,
        terminate_on_cancel: bool = False,
    ) -> str:
        """Run ``argv`` to completion, streaming merged output lines.

        The token is checked before spawning. Once spawned the process runs to
        completion unless ``terminate_on_cancel`` is set.
        """
        token.raise_if_cancelled()
        argv = list(argv)
        logger.info("running: %s", " ".join(argv))
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as exc:
            raise ProcessError(f"{argv[0]}: command not found") from exc
        except OSError as exc:
            raise ProcessError(f"{argv[0]}: {exc}") from exc

        stop = threading.Event()
        killed = threading.Event()
        if terminate_on_cancel:

            def watch() -> None:
                while not stop.wait(self.poll_interval):
                    if token.cancelled:
                        killed.set()
                        proc.terminate()
                        return

            threading.Thread(target=watch, name="hoard-proc-watch", daemon=True).start()

        lines: List[str] = []
        try:
            assert proc.stdout is not None
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                lines.append(line)
                if on_line is not None:
                    on_line(line)
            returncode = proc.wait()
        finally:
            stop.set()
        output = "\n".join(lines)
        if killed.is_set():
            raise Cancelled("cancelled")
        if returncode != 0:
            tail = next((line for line in reversed(lines) if line.strip()), "")
            message = f"{argv[0]} exited with {returncode}"
            if tail:
                message = f"{message}: {tail}"
            raise ProcessError(message, returncode, output)
        return output

    def capture(self, argv: Sequence[str], token: CancelSignal, timeout: float = 30.0) -> Tuple[int, str, str]:
        """Short query commands (``brew search``...): (returncode, stdout, stderr)."""
        token.raise_if_cancelled()
        try:
            result = subprocess.run(list(argv), capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError as exc:
            raise ProcessError(f"{argv[0]}: command not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProcessError(f"{argv[0]} timed out after {timeout:.0f}s") from exc
        return result.returncode, result.stdout, result.stderr
