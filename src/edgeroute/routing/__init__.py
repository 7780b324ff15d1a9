"""Route table, phase state machine, and the helpers it applies per route.

Submodules are imported explicitly; this package re-exports nothing so
that ``edgeroute.http`` can depend on ``edgeroute.routing.pcre`` without
an import cycle.
"""
