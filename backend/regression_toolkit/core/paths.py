"""
Dynamic path resolution for the Regression Toolkit.

All paths are calculated from the installed package location or from the
REGRESSION_TOOLKIT_DATA environment variable, so the server behaves the same
regardless of the working directory it is started from.
"""

import os
from pathlib import Path


# === Core Project Structure ===


def get_package_root() -> Path:
    """
    Get the root directory of the regression_toolkit package.

    This is the directory containing the regression_toolkit/ folder,
    calculated dynamically from this file's location.

    Returns:
        Path: Absolute path to package root (e.g., /srv/regression-toolkit/backend)
    """
    # This file is at: regression_toolkit/core/paths.py
    return Path(__file__).parent.parent.parent.resolve()


def get_package_dir() -> Path:
    """
    Get the regression_toolkit package directory.

    Returns:
        Path: Absolute path to regression_toolkit/ directory
    """
    return Path(__file__).parent.parent.resolve()


# === User Data Paths ===


def get_user_data_dir() -> Path:
    """
    Get the user's data directory for the database and diff artifacts.

    Priority order:
    1. REGRESSION_TOOLKIT_DATA environment variable
    2. XDG_DATA_HOME/regression-toolkit (if XDG_DATA_HOME is set)
    3. ~/.regression-toolkit/ (fallback)

    Returns:
        Path: Absolute path to user data directory

    Example:
        >>> user_data = get_user_data_dir()
        >>> print(user_data)
        /root/.regression-toolkit
    """
    env_data = os.environ.get("REGRESSION_TOOLKIT_DATA")
    if env_data:
        user_dir = Path(env_data).expanduser()
        user_dir.mkdir(parents=True, exist_ok=True)
        return user_dir

    xdg_data_home = os.environ.get("XDG_DATA_HOME")

    if xdg_data_home:
        user_dir = Path(xdg_data_home) / "regression-toolkit"
    else:
        user_dir = Path.home() / ".regression-toolkit"

    user_dir.mkdir(parents=True, exist_ok=True)
    return user_dir


def get_database_file() -> Path:
    """
    Get the path to the SQLite database file.

    Returns:
        Path: Absolute path to regressions.db file
    """
    return get_user_data_dir() / "regressions.db"


def get_diffs_dir() -> Path:
    """
    Get the directory where generated diff images are written.

    Returns:
        Path: Absolute path to the diffs/ directory
    """
    return get_user_data_dir() / "diffs"


def get_env_file() -> Path:
    """
    Get the path to the .env file.

    Returns:
        Path: Absolute path to .env file
    """
    return get_package_root() / ".env"


# === Validation ===


def validate_paths() -> dict:
    """
    Validate that all critical paths exist and are accessible.

    Returns:
        dict: Status of each path with 'exists' and 'writable' flags
    """
    paths_to_check = {
        "package_root": get_package_root(),
        "package_dir": get_package_dir(),
        "user_data_dir": get_user_data_dir(),
        "database_file": get_database_file(),
        "diffs_dir": get_diffs_dir(),
        "env_file": get_env_file(),
    }

    status = {}
    for name, path in paths_to_check.items():
        status[name] = {
            "path": str(path),
            "exists": path.exists(),
            "is_dir": path.is_dir() if path.exists() else None,
            "is_file": path.is_file() if path.exists() else None,
            "writable": os.access(path.parent if path.is_file() else path, os.W_OK),
        }

    return status
