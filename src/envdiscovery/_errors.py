"""Exceptions raised to callers and the user-facing messages attached to them."""

from __future__ import annotations

MESSAGES: dict[str, str] = {
    "jupyter_not_supported": (
        "Jupyter cannot be started: the 'notebook' package was not found in any Python environment. "
        "Install it with 'python -m pip install notebook' into the selected interpreter."
    ),
    "nbconvert_not_supported": (
        "Notebooks cannot be imported: the 'nbconvert' package was not found in any Python environment."
    ),
    "kernelspec_not_supported": "Jupyter kernel specs cannot be listed: 'jupyter kernelspec' is not available.",
    "ipykernel_not_supported": (
        "A Jupyter kernel cannot be created: the 'ipykernel' package was not found in any Python environment."
    ),
    "notebook_failure": "Failed to launch the Jupyter notebook server: {0}",
}

_COMMAND_MESSAGE_KEYS = {
    "notebook": "jupyter_not_supported",
    "nbconvert": "nbconvert_not_supported",
    "kernelspec": "kernelspec_not_supported",
    "ipykernel": "ipykernel_not_supported",
}


def localize(key: str, *args: object) -> str:
    message = MESSAGES.get(key, key)
    return message.format(*args) if args else message


class DiscoveryError(RuntimeError):
    """Base class of the errors this package raises."""


class ProcessFailedError(DiscoveryError):
    def __init__(self, cmd: str, exit_code: int | None, stderr: str = "") -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.stderr = stderr
        err_str = f" err: {stderr!r}" if stderr else ""
        super().__init__(f"failed to run {cmd} with code {exit_code}{err_str}")


class JupyterNotSupportedError(DiscoveryError):
    """No interpreter or executable on this machine can run the requested Jupyter command."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(localize(_COMMAND_MESSAGE_KEYS.get(command, "jupyter_not_supported")))


class NotebookLaunchError(DiscoveryError):
    def __init__(self, reason: BaseException) -> None:
        self.reason = reason
        super().__init__(localize("notebook_failure", reason))


__all__ = [
    "MESSAGES",
    "DiscoveryError",
    "JupyterNotSupportedError",
    "NotebookLaunchError",
    "ProcessFailedError",
    "localize",
]
