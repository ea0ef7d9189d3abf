"""Testing utilities for the token authority.

Load the fixtures in a conftest with ``pytest_plugins = ["token_authority.testing.fixtures"]``.
"""

from token_authority.testing.fixtures import issue_token_pair, make_config, pkce_pair

__all__ = ["issue_token_pair", "make_config", "pkce_pair"]
