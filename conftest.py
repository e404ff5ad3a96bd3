"""Pytest configuration for pg-ops-mcp tests.

Global warning filters that must be installed before the models are imported.
"""

import warnings

# TableSummary has a 'schema' field that shadows a BaseModel attribute
warnings.filterwarnings(
    "ignore",
    message=r".*Field name \"schema\".*shadows an attribute.*",
    category=UserWarning,
)
