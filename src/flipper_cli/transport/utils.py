import time
import contextlib
import logging
from typing import Callable, Optional

ProgressCallback = Callable[[int, int], None]

@contextlib.contextmanager
def transfer_timer(logger: logging.Logger, operation_name: str = "Transfer",
                   data_size: Optional[int] = None,
                   log_level: int = logging.INFO):
    """
    Context manager for timing file transfer operations and calculating data rates.

    Nothing is logged when the block raises; the exception carries the story.

    Args:
        logger: Logger instance to use for output
        operation_name: Name of the operation being timed (e.g., "Upload", "Download")
        data_size: Optional size in bytes of the data being transferred
        log_level: Logging level to use for the timing message

    Example:
        with transfer_timer(self.log, "Upload", file_size):
            self._send_chunks(source)
    """
    start_time = time.monotonic()
    yield
    elapsed_time = time.monotonic() - start_time

    message = f"{operation_name} completed in {elapsed_time:.2f} seconds"
    if data_size and elapsed_time > 0:
        bytes_per_second = data_size / elapsed_time
        if bytes_per_second >= 1024 * 1024:
            rate_str = f"{bytes_per_second / (1024 * 1024):.2f} MiB/s"
        else:
            rate_str = f"{bytes_per_second / 1024:.2f} KiB/s"
        message += f" ({rate_str})"

    logger.log(log_level, message)


def report_progress(progress: Optional[ProgressCallback], transferred: int, total: int) -> None:
    """Calls the progress callback if one was given."""
    if progress:
        progress(transferred, total)
