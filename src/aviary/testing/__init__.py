"""Test utilities for aviary applications.

::

    from aviary.testing import TestClient
"""

from aviary.testing.client import TestClient

__all__ = ["TestClient"]
