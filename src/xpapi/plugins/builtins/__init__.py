"""Plugins shipped with xpapi and registered through entry points."""
