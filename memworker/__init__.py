"""memworker - client glue for the Claude memory worker.

Hooks call into this package to check that the local background worker is
up and ready, forward tool observations to it, and request session summaries
over HTTP.
"""

__version__ = "0.1.0"
