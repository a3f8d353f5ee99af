import subprocess

from ..cli_logger import logger

# Exit status bash reports for a command it cannot find.
COMMAND_NOT_FOUND = 127


class _NotStarted:
    returncode = COMMAND_NOT_FOUND


def stream_command(command, cwd=None, env=None):
    """
    Starts a command with stderr folded into stdout.

    Returns (lines, process). The process's returncode is set once the lines
    have been consumed.
    """
    try:
        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            bufsize=1,
            text=True,
            env=env,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        logger.error(f"Command not found: {e.filename}")
        return iter([]), _NotStarted()

    def _lines():
        with process.stdout:
            yield from process.stdout
        process.wait()

    return _lines(), process
