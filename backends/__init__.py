"""Backend implementations behind the LendingBackend interface."""
