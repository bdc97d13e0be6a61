#  Copyright (c) 2021-2025  The University of Texas Southwestern Medical Center.
#  All rights reserved.
#  Redistribution and use in source and binary forms, with or without
#  modification, are permitted for academic and research use only (subject to the
#  limitations in the disclaimer below) provided that the following conditions are met:
#       * Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#       * Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#       * Neither the name of the copyright holders nor the names of its
#       contributors may be used to endorse or promote products derived from this
#       software without specific prior written permission.
#  NO EXPRESS OR IMPLIED LICENSES TO ANY PARTY'S PATENT RIGHTS ARE GRANTED BY
#  THIS LICENSE. THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND
#  CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
#  LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
#  PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#  CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL,
#  EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#  PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR
#  BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER
#  IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
#  ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
#  POSSIBILITY OF SUCH DAMAGE.

# Standard Library Imports
import logging
import os
import socket
import sys
from datetime import datetime

# Third Party Imports
import typer

# Local Imports


def initialize_logging(log_directory: str, enable_logging: bool) -> logging.Logger:
    """Initialize logging if not already configured.

    If the root logger already has handlers and a level, it is returned as is.
    Otherwise a per-process log file is set up in ``log_directory`` when
    ``enable_logging`` is True, or a NullHandler is attached when it is False.

    Parameters
    ----------
    log_directory : str
        The directory the log file is created in.
    enable_logging : bool
        Whether to set up file and console logging.

    Returns
    -------
    logging.Logger
        The root logger instance.
    """
    root_logger = logging.getLogger()
    if root_logger.hasHandlers() and root_logger.level != logging.NOTSET:
        return root_logger

    if enable_logging:
        return initiate_logger(log_directory=log_directory)

    root_logger.addHandler(logging.NullHandler())
    return root_logger


def initiate_logger(log_directory, level: int = logging.INFO) -> logging.Logger:
    """Set up logging to a timestamped file in ``log_directory`` and to stdout.

    The file is named ``YYYY-MM-DD-HH-SS-<hostname>-<identifier>.log``, where the
    identifier is a Slurm task/job id when one is set and the process id otherwise,
    so concurrent jobs never share a log file.

    Parameters
    ----------
    log_directory : str
        The directory where the log file will be created.
    level : int, optional
        Level of both handlers. Defaults to logging.INFO.

    Returns
    -------
    logging.Logger
        The configured root logger instance.
    """
    os.makedirs(log_directory, exist_ok=True)

    # Prefer Slurm identifiers, fall back to PID
    slurm_keys = ("SLURM_PROCID", "SLURM_NODEID", "SLURM_ARRAY_TASK_ID", "SLURM_JOB_ID")
    slurm_id = next((os.environ.get(k) for k in slurm_keys if os.environ.get(k)), None)
    identifier = slurm_id or str(os.getpid())
    hostname = socket.gethostname()

    timestamp = datetime.now().strftime("%Y-%m-%d-%H-%S")
    log_path = os.path.join(log_directory, f"{timestamp}-{hostname}-{identifier}.log")

    root_logger = logging.getLogger()

    # Remove existing handlers to avoid duplicate lines across repeated setups.
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    fh = logging.FileHandler(log_path, mode="a")
    fh.setLevel(level)
    fh.setFormatter(formatter)
    root_logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(level)
    sh.setFormatter(formatter)
    root_logger.addHandler(sh)

    root_logger.setLevel(level)
    return root_logger


def log_and_echo(logger: logging.Logger, message: str, level: str = "info") -> None:
    """Log a message at ``level`` and print it to the console with ``typer.echo``.

    Parameters
    ----------
    logger : logging.Logger
        The logger to write to.
    message : str
        The message to log and display.
    level : str, optional
        One of {'info', 'warning', 'error', 'debug'}. Unknown levels fall back to
        'info'. Defaults to 'info'.
    """
    if level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    elif level == "debug":
        logger.debug(message)
    else:
        logger.info(message)
    typer.echo(message, err=level == "error")
