"""
Command line interface for calculating hydrogen bond energies.

``hbenergy listing`` evaluates the bonds of an HBPlus listing,
``hbenergy pair`` evaluates a single bond given as two residue/atom specifiers.
One ``HBond <n> Energy: <e>`` line is printed for every bond that produced an
energy. Diagnostics go to stderr.
"""

import argparse
import logging
import sys
from typing import List, Optional

from hbenergy.constants import CAP_STYLES, ECALC_BINARY, ECALC_TIMEOUT, MAX_HBONDS, TERMINAL_OXYGEN
from hbenergy.ecalc import ECalc
from hbenergy.errors import HBEnergyError, InputError
from hbenergy.hbonds import HBond, create_hbond, read_hbonds
from hbenergy.log import logger
from hbenergy.pipeline import EnergyOptions, iter_energies
from hbenergy.structure import Structure


def _add_common_arguments(parser: argparse.ArgumentParser):
  parser.add_argument("-r", "--relax", action="store_true", help="Relax the fragments before calculating the energy")
  parser.add_argument("-o", "--hbonds", action="store_true", help="Only use the hydrogen bond terms of the potential, overrides -r")
  parser.add_argument("--ecalc", default=ECALC_BINARY, help="Name or path of the ecalc executable")
  parser.add_argument("--timeout", type=float, default=ECALC_TIMEOUT, help="Seconds to wait for one ecalc run, 0 waits forever")
  parser.add_argument("--retries", type=int, default=0, help="Extra attempts when ecalc fails")
  parser.add_argument("--scratch-dir", default=None, help="Directory for temporary files, defaults to the system temporary directory")
  parser.add_argument("--direct", action="store_true", help="Run ecalc -p on the fragment file instead of using a control file")
  parser.add_argument("--cap-style", choices=sorted(CAP_STYLES), default="charmm", help="Naming of the terminal atoms added to fragments")
  parser.add_argument("--progress", action="store_true", help="Show a progress bar")
  parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
  parser.add_argument("pdhfile", help="PDB file with hydrogens")


def setup_parser() -> argparse.ArgumentParser:
  """Create and configure argument parser."""
  parser = argparse.ArgumentParser(prog="hbenergy", description="Calculate the interaction energy of hydrogen bonded residues with ecalc")
  subparsers = parser.add_subparsers(dest="command", required=True)

  listing = subparsers.add_parser("listing", help="Energies of the hydrogen bonds in an HBPlus listing")
  _add_common_arguments(listing)
  listing.add_argument("hb2file", help="HBPlus listing (.hb2)")
  listing.add_argument("-a", "--all", action="store_true", help="Process all hydrogen bonds, not just sidechain-sidechain bonds")
  listing.add_argument("--max-hbonds", type=int, default=MAX_HBONDS, help="Maximum number of hydrogen bonds accepted from the listing")

  pair = subparsers.add_parser("pair", help="Energy of a single hydrogen bond")
  _add_common_arguments(pair)
  pair.add_argument("resspec1", help="Donor as [c]nnn[i].ATOM")
  pair.add_argument("resspec2", help="Acceptor as [c]nnn[i].ATOM")
  return parser


def _energy_mode(args: argparse.Namespace) -> str:
  if args.hbonds:
    return "hbonds"
  if args.relax:
    return "relax"
  return "default"


def _pair_hbonds(args: argparse.Namespace, parser: argparse.ArgumentParser) -> Optional[List[HBond]]:
  try:
    hbond = create_hbond(args.resspec1, args.resspec2)
  except ValueError as e:
    parser.error(str(e))
  if hbond.donor_atom.startswith(TERMINAL_OXYGEN) or hbond.acceptor_atom.startswith(TERMINAL_OXYGEN):
    logger.error(f"Hydrogen bonds involving {TERMINAL_OXYGEN} are not supported: {hbond}")
    return None
  return [hbond]


def main(argv: Optional[List[str]] = None) -> int:
  """Main entry point for the hbenergy CLI.

  Parameters:
    argv: Command line arguments, defaults to ``sys.argv[1:]``

  Returns:
    ``0`` when every processed bond produced an energy, ``1`` otherwise,
    including a listing without any hydrogen bonds

  """
  parser = setup_parser()
  args = parser.parse_args(argv)
  logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)

  try:
    options = EnergyOptions(
      mode=_energy_mode(args),
      process_all=getattr(args, "all", False),
      use_control_file=not args.direct,
      cap_style=args.cap_style,
      scratch_dir=args.scratch_dir,
    )
  except ValueError as e:
    parser.error(str(e))

  if args.command == "pair":
    hbonds = _pair_hbonds(args, parser)
    if hbonds is None:
      return 1

  try:
    if args.command == "listing":
      hbonds = read_hbonds(args.hb2file, max_records=args.max_hbonds)
      if not hbonds:
        raise InputError(f"No hydrogen bonds read from {args.hb2file}.")
    structure = Structure.from_pdb(args.pdhfile)
    evaluator = ECalc(args.ecalc, timeout=args.timeout or None, retries=args.retries)

    failed = 0
    for result in iter_energies(structure, hbonds, evaluator, options=options, progress=args.progress):
      if result.ok:
        print(result, flush=True)
      else:
        failed += 1
  except (HBEnergyError, FileNotFoundError) as e:
    logger.critical(str(e))
    return 1

  if failed:
    logger.error(f"{failed} hydrogen bond(s) could not be evaluated.")
    return 1
  return 0


if __name__ == "__main__":
  sys.exit(main())
