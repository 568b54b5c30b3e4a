"""Load the job configuration file.

Parsing is delegated to `tomllib`; the resulting mapping is validated by
`BackupConfig`.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Union

from models.job_config import BackupConfig


def load_config(path: Union[str, Path]) -> BackupConfig:
    """Read and validate a TOML configuration file.

    Args:
        path: Config file path.

    Returns:
        BackupConfig: Validated configuration.

    Raises:
        OSError: When the file cannot be read.
        tomllib.TOMLDecodeError: When the file is not valid TOML.
        pydantic.ValidationError: When the content does not match the schema.
    """

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return BackupConfig.model_validate(data)
