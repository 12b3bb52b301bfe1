"""State/store layer.

This package is the single owner of the resource table. Every load, merge,
set, add and remove goes through :class:`~resmand.state.store.ResourceStore`,
which decides whether the table changed and raises at most one
:class:`~resmand.state.events.ChangeEvent` per call.
"""
