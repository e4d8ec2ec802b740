from contextlib import nullcontext
import logging
from typing import ContextManager, Optional, TypeVar

from rich.console import Console
from rich.logging import RichHandler
import rich.progress

from .settings import APP_NAME, logger

console = Console(stderr=True)
# general rule: this logger is used for internal logs only.
handler = RichHandler(
    level=logging.DEBUG,
    markup=False,
    show_path=False,
    console=console,
    log_time_format=r"[%X]",
)
if not any(isinstance(h, RichHandler) for h in logger.handlers):
    logger.addHandler(handler)

pre_tag = rf"[cyan]\[{APP_NAME}][/cyan]"


def set_verbosity(verbose: bool):
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def user_warning(*args, **kwargs):
    console.print(pre_tag, "[yellow]WARN[/]", *args, **kwargs)


def user_error(*args, **kwargs):
    console.print(pre_tag, "[red]ERROR[/]", *args, **kwargs)


def user_info(*args, **kwargs):
    """Use this to print info that we can reasonably expect the user will want to see.

    We use this instead of logger.info because we want to include fancy rich formatting."""
    console.print(pre_tag, *args, **kwargs)


def decorate(x: str, desc: str):
    return f"[{desc}]{x}[/{desc}]"


T = TypeVar("T")


def tape_progress(
    file: T,
    total: Optional[int],
    bigsize: int = 2**23,
    description: str = "Reading",
    **kwargs,
) -> ContextManager[T]:
    """Use this to show a little progress bar as a process reads through the given file.

    Args:
        file: The file to read.
        total: The content length of the file in bytes. If this is None then no bar is shown.
        description: A little description to put before the progress bar.

    By default, the progress bar is only shown for files bigger than ``bigsize``.
    """
    if total is not None and total > bigsize:
        return rich.progress.wrap_file(  # type: ignore
            file=file,  # type: ignore
            total=total,
            transient=True,
            description=description,
            console=console,
            **kwargs,
        )
    return nullcontext(file)
