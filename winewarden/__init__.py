"""Trust tiers, a policy engine, observation of game sessions, prefix hygiene, reports and a daemon for Windows games run under Wine."""

__version__ = "0.1.0"