"""
Exception types raised by the integration pipeline.

Only two kinds of failure are reported as exceptions: configuration errors,
which are refused before a step mutates any state, and diagnostic misuse, such
as reading MEGNO before the shadow particles exist. Numerical blow-ups and
collision outcomes are not exceptions; they surface as stop reasons and
collision effects.
"""

from __future__ import annotations


class NBodyError(Exception):
	pass


class ConfigurationError(NBodyError, ValueError):
	pass


class DiagnosticMisuseError(NBodyError, RuntimeError):
	pass


__all__ = ["NBodyError", "ConfigurationError", "DiagnosticMisuseError"]
