"""Outbound transports: email, browser push, social post."""
