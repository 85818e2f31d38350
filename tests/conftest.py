"""Shared test fixtures for all tests.

This file imports and re-exports fixtures from the fixtures/ module,
organized by component. They are discovered by pytest through this
conftest.py file.
"""

from tests.fixtures.config import (  # noqa: F401
    clean_env,
    config_file,
    file_store_settings,
    mock_settings,
)
from tests.fixtures.execution import (  # noqa: F401
    api_client,
    apis,
    engine,
    execution_config,
    extensions,
    functions,
)
from tests.fixtures.skills import (  # noqa: F401
    add_skill,
    echo_skill,
    event_bus,
    populated_registry,
    recorder,
    registry,
)
