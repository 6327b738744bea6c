"""Provision Linode nodes with a dual-stage CoreOS install."""
