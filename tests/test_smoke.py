"""Public smoke tests for basic module wiring.

Keep these minimal and free of any real-world data.
"""

from __future__ import annotations


def test_imports() -> None:
    import splitsmart
    import splitsmart.application.server
    import splitsmart.cli.main
    import splitsmart.receipt
    import splitsmart.runtime

    assert splitsmart.__version__
    assert splitsmart.application.server.create_app is not None
    assert splitsmart.cli.main is not None
    assert splitsmart.receipt is not None
    assert splitsmart.runtime is not None
