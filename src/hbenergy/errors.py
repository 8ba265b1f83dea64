"""
Exceptions raised while calculating hydrogen bond energies.

Fatal errors (:obj:`InputError`, :obj:`CapacityExceededError`, :obj:`ScratchIOError`)
abort a whole run. The remaining errors only abort the bond being evaluated.
"""


class HBEnergyError(Exception):
  """Base class for all hbenergy errors."""


class InputError(HBEnergyError):
  """An input listing or coordinate file is missing, unreadable or malformed."""


class CapacityExceededError(HBEnergyError):
  """The listing holds more hydrogen bonds than the configured maximum."""


class ResidueNotFoundError(HBEnergyError, LookupError):
  """A donor or acceptor residue does not exist in the structure."""

  def __init__(self, role: str, spec: str):
    self.role = role
    self.spec = spec
    super().__init__(f"{role.capitalize()} residue {spec} not found")


class FragmentError(HBEnergyError):
  """A residue fragment cannot be turned into a coordinate file."""


class ScratchIOError(HBEnergyError, OSError):
  """A scratch file could not be created or written."""


class EvaluatorError(HBEnergyError, RuntimeError):
  """ecalc failed, timed out, or produced no parseable energy."""
