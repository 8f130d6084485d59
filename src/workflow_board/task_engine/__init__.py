"""Stage registry, reconciliation, projections and the engine that drives them.

Everything here works on plain in-memory records; the engine is the only
part that talks to a collaborator (see :mod:`workflow_board.services`).
"""
