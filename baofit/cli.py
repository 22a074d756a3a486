"""
Command line interface: ``baofit --data <prefix> --fiducial <name> --nowiggles <name> [options]``.
"""

import argparse
import logging
import sys

from .core_utils import BaoFitError, FitConfig, logging_context
from .driver import run_fit

logger = logging.getLogger(__name__)

__all__ = ['build_parser', 'config_from_args', 'main']


def _contour_pair(text):
    try:
        x, y = (int(token) for token in text.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a pair of parameter indices like 4,3, got {text!r}")
    return x, y


def _initial_value(text):
    name, sep, value = text.partition('=')
    if not sep:
        raise argparse.ArgumentTypeError(f"Expected name=value, got {text!r}")
    try:
        return name.strip(), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid value in {text!r}")


def build_parser() -> argparse.ArgumentParser:
    defaults = FitConfig()
    parser = argparse.ArgumentParser(
        description="BAO fitting of the Lyman-alpha 3D correlation function",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--verbose", action="store_true", help="Prints additional information.")
    parser.add_argument("--log-file", default=None, help="Also write log messages to this file.")

    cosmo = parser.add_argument_group("cosmology")
    cosmo.add_argument("--omega-lambda", type=float, default=defaults.omega_lambda,
                       help="Present-day value of OmegaLambda.")
    cosmo.add_argument("--omega-matter", type=float, default=defaults.omega_matter,
                       help="Present-day value of OmegaMatter or zero for 1-OmegaLambda.")

    inputs = parser.add_argument_group("inputs")
    inputs.add_argument("--fiducial", default="",
                        help="Fiducial correlation functions will be read from <name>.<ell>.dat with ell=0,2,4.")
    inputs.add_argument("--nowiggles", default="",
                        help="No-wiggles correlation functions will be read from <name>.<ell>.dat with ell=0,2,4.")
    inputs.add_argument("--zref", type=float, default=defaults.zref, help="Reference redshift.")
    inputs.add_argument("--data", default="",
                        help="3D covariance data will be read from <data>.params and <data>.cov")

    binning = parser.add_argument_group("binning")
    binning.add_argument("--minll", type=float, default=defaults.minll, help="Minimum log(lam2/lam1).")
    binning.add_argument("--dll", type=float, default=defaults.dll, help="log(lam2/lam1) binsize.")
    binning.add_argument("--dll2", type=float, default=defaults.dll2,
                         help="log(lam2/lam1) second binsize parameter for two-step binning.")
    binning.add_argument("--nll", type=int, default=defaults.nll, help="Maximum number of log(lam2/lam1) bins.")
    binning.add_argument("--minsep", type=float, default=defaults.minsep, help="Minimum separation in arcmins.")
    binning.add_argument("--dsep", type=float, default=defaults.dsep, help="Separation binsize in arcmins.")
    binning.add_argument("--nsep", type=int, default=defaults.nsep, help="Maximum number of separation bins.")
    binning.add_argument("--minz", type=float, default=defaults.minz, help="Minimum redshift.")
    binning.add_argument("--dz", type=float, default=defaults.dz, help="Redshift binsize.")
    binning.add_argument("--nz", type=int, default=defaults.nz, help="Maximum number of redshift bins.")

    fit = parser.add_argument_group("fit")
    fit.add_argument("--rmin", type=float, default=defaults.rmin,
                     help="Minimum 3D comoving separation (Mpc/h) to use in fit.")
    fit.add_argument("--rmax", type=float, default=defaults.rmax,
                     help="Maximum 3D comoving separation (Mpc/h) to use in fit.")
    fit.add_argument("--fix-bao", action="store_true", help="Fix BAO scale and amplitude parameters.")
    fit.add_argument("--no-bband", action="store_true",
                     help="Do not add any broadband contribution to the correlation function.")
    fit.add_argument("--initial", type=_initial_value, action="append", default=[], metavar="NAME=VALUE",
                     help="Override the starting value of a parameter (repeatable).")
    fit.add_argument("--minos", action="store_true", help="Runs MINOS to improve error estimates.")
    fit.add_argument("--max-function-calls", type=int, default=None,
                     help="Function call limit per minimization (default 100*npar^2).")
    fit.add_argument("--tolerance", type=float, default=defaults.tolerance, help="Minuit EDM tolerance.")
    fit.add_argument("--strategy", type=int, choices=(0, 1, 2), default=defaults.strategy,
                     help="Minuit strategy.")

    output = parser.add_argument_group("output")
    output.add_argument("--dump", default="", help="Filename for dumping fit results.")
    output.add_argument("--ncontour", type=int, default=defaults.ncontour,
                        help="Number of contour points to calculate in BAO parameters.")
    output.add_argument("--contour-levels", type=float, nargs="+", default=list(defaults.contour_levels),
                        help="Confidence levels of the contours, in output order.")
    output.add_argument("--contour-pair", type=_contour_pair, action="append", default=None, dest="contour_pairs",
                        metavar="X,Y", help="Parameter index pair to contour (repeatable, replaces the defaults).")
    output.add_argument("--model-bins", type=int, default=defaults.model_bins,
                        help="Number of high-resolution uniform bins to use for dumping best fit model.")
    return parser


def config_from_args(args) -> FitConfig:
    kwargs = dict(
        omega_lambda=args.omega_lambda, omega_matter=args.omega_matter,
        fiducial=args.fiducial, nowiggles=args.nowiggles, zref=args.zref, data=args.data,
        minll=args.minll, dll=args.dll, dll2=args.dll2, nll=args.nll,
        minsep=args.minsep, dsep=args.dsep, nsep=args.nsep,
        minz=args.minz, dz=args.dz, nz=args.nz,
        rmin=args.rmin, rmax=args.rmax, fix_bao=args.fix_bao, no_bband=args.no_bband,
        initial_values=dict(args.initial),
        max_function_calls=args.max_function_calls, tolerance=args.tolerance,
        strategy=args.strategy, minos=args.minos,
        ncontour=args.ncontour, contour_levels=args.contour_levels,
        dump=args.dump, model_bins=args.model_bins,
        log_level="DEBUG" if args.verbose else "INFO", log_file=args.log_file,
    )
    if args.contour_pairs:
        kwargs['contour_pairs'] = args.contour_pairs
    return FitConfig(**kwargs)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = config_from_args(args)
    except BaoFitError as e:
        parser.error(str(e))

    with logging_context(config.log_file, config.log_level):
        try:
            output = run_fit(config)
        except (BaoFitError, OSError) as e:
            logger.error(f"ERROR: {e}")
            return 2
        if output.dump_path:
            logger.info(f"Fit results written to {output.dump_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
