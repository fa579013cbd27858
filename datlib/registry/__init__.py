"""Registry — the archive library and its startup reconciliation.

The registry provides:
- Library: the public API (list, get, create, fork, remove, close)
- Handle cache: one live handle per canonical address, with usage times
- Reconciler: loads the persisted index and salvages owned local archives
"""
