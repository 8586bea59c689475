import os
import sys
import logging
import argparse
import platform

from fx2.format import autodetect, input_data, output_data

from . import __version__
from .support.logging import *
from .gpio import *
from .gpio.vcd import VCDLineDriver
from .protocol.icp import *
from .database.nuvoton.n76 import *
from .programmer import *
from .programmer.flash import *
from .simulation.target import SimulatedN76


# When running as `-m n76icp.cli`, `__name__` is `__main__`, and the real name
# can be retrieved from `__loader__.name`.
logger = logging.getLogger(__loader__.name)


class TextHelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog):
        if "COLUMNS" in os.environ:
            columns = int(os.environ["COLUMNS"])
        else:
            try:
                columns, _ = os.get_terminal_size(sys.stderr.fileno())
            except OSError:
                columns = 80
        super().__init__(prog, width=columns, max_help_position=28)


def version_info():
    python_version = ".".join(map(str, sys.version_info[:3]))
    python_implementation = platform.python_implementation()
    return f"n76icp {__version__} ({python_implementation} {python_version})"


def get_argparser():
    def hex_bytes(arg):
        try:
            return bytes.fromhex(arg)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{arg!r} is not a hexadecimal byte string")

    def int_with_base(arg):
        return int(arg, 0)

    parser = argparse.ArgumentParser(
        prog="n76icp", formatter_class=TextHelpFormatter,
        description="Program Nuvoton N76E003 and MS51 microcontrollers over ICP")

    parser.add_argument(
        "-V", "--version", action="version", version=version_info(),
        help="show version and exit")
    parser.add_argument(
        "-v", "--verbose", default=0, action="count",
        help="increase logging verbosity")
    parser.add_argument(
        "-q", "--quiet", default=0, action="count",
        help="decrease logging verbosity")
    parser.add_argument(
        "-L", "--log-file", metavar="FILE", type=argparse.FileType("w"),
        help="save log messages at highest verbosity to FILE")
    parser.add_argument(
        "-F", "--filter-log", metavar="FILTER", type=str, action="append",
        help="raise TRACE log messages to INFO if they begin with 'FILTER: '")
    parser.add_argument(
        "--no-shorten", default=False, action="store_true",
        help="do not shorten sequences in logs")

    g_lines = parser.add_argument_group("lines")
    g_lines.add_argument(
        "--dat", metavar="PIN", type=int, default=20,
        help="BCM number of the GPIO connected to DAT (default: %(default)s)")
    g_lines.add_argument(
        "--clk", metavar="PIN", type=int, default=26,
        help="BCM number of the GPIO connected to CLK (default: %(default)s)")
    g_lines.add_argument(
        "--rst", metavar="PIN", type=int, default=21,
        help="BCM number of the GPIO connected to RST (default: %(default)s)")
    g_lines.add_argument(
        "--simulate", default=False, action="store_true",
        help="operate on a simulated target instead of GPIO lines")
    g_lines.add_argument(
        "--simulate-device", metavar="DEVICE", default="n76e003",
        choices=sorted(devices_by_name),
        help="device to simulate (default: %(default)s)")
    g_lines.add_argument(
        "--trace-vcd", metavar="FILE", type=argparse.FileType("w"),
        help="record the activity on the lines to FILE in VCD format")

    g_device = parser.add_argument_group("device")
    g_device.add_argument(
        "--flash-size", metavar="SIZE", type=int_with_base,
        help="flash size in bytes (default: as reported by the device)")
    g_device.add_argument(
        "--force", default=False, action="store_true",
        help="operate on devices that are not recognized")

    p_operation = parser.add_subparsers(dest="operation", metavar="OPERATION", required=True)

    p_operation.add_parser(
        "identify", help="identify connected device",
        formatter_class=TextHelpFormatter)

    p_read = p_operation.add_parser(
        "read", help="read device memories",
        formatter_class=TextHelpFormatter)
    p_read.add_argument(
        "-a", "--aprom", metavar="FILE", type=argparse.FileType("wb"),
        help="write APROM contents to FILE")
    p_read.add_argument(
        "-l", "--ldrom", metavar="FILE", type=argparse.FileType("wb"),
        help="write LDROM contents to FILE")
    p_read.add_argument(
        "-c", "--config", default=False, action="store_true",
        help="display configuration bytes")

    p_write = p_operation.add_parser(
        "write", help="write and verify device flash",
        formatter_class=TextHelpFormatter,
        description="""
        Erase the device, then write and verify APROM and/or LDROM images. Writing an LDROM
        image also rewrites the configuration so that the device boots from LDROM, with
        the LDROM sized to fit the image.
        """)
    p_write.add_argument(
        "aprom", metavar="APROM-FILE", type=argparse.FileType("rb"), nargs="?",
        help="read APROM contents from APROM-FILE")
    p_write.add_argument(
        "-l", "--ldrom", metavar="FILE", type=argparse.FileType("rb"),
        help="read LDROM contents from FILE")
    p_write.add_argument(
        "--no-erase", dest="erase", default=True, action="store_false",
        help="do not erase the device first")
    p_write.add_argument(
        "--no-verify", dest="verify", default=True, action="store_false",
        help="do not read back written data")

    p_write_config = p_operation.add_parser(
        "write-config", help="write and verify configuration bytes",
        formatter_class=TextHelpFormatter)
    p_write_config.add_argument(
        "config", metavar="HEX", type=hex_bytes,
        help=f"write {CONFIG_LEN} configuration bytes given as HEX")

    p_operation.add_parser(
        "erase", help="erase device configuration, SPROM, and flash",
        formatter_class=TextHelpFormatter)

    return parser


class TerminalFormatter(logging.Formatter):
    DEFAULT_COLORS = {
        "TRACE"   : "\033[0m",
        "DEBUG"   : "\033[36m",
        "INFO"    : "\033[1m",
        "WARNING" : "\033[1;33m",
        "ERROR"   : "\033[1;31m",
        "CRITICAL": "\033[1;41m",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.colors = dict(self.DEFAULT_COLORS)
        for color_override in os.getenv("N76ICP_COLORS", "").split(":"):
            if color_override:
                level, color = color_override.split("=", 2)
                self.colors[level] = f"\033[{color}m"

    def format(self, record):
        color = self.colors.get(record.levelname, "")
        # n76icp.programmer.flash → n.programmer.flash
        record.name = record.name.replace("n76icp.", "n.")
        return f"{color}{super().format(record)}\033[0m"


class SubjectFilter:
    def __init__(self, level, subjects):
        self.level    = level
        self.subjects = subjects or ()

    def filter(self, record):
        levelno = record.levelno
        for subject in self.subjects:
            if isinstance(record.msg, str) and record.msg.startswith(subject + ": "):
                levelno = logging.INFO
        return levelno >= self.level


def create_logger():
    root_logger = logging.getLogger()

    term_formatter_args = {"style": "{",
        "fmt": "{levelname[0]:s}: {name:s}: {message:s}"}
    term_handler = logging.StreamHandler()
    if sys.stderr.isatty() and sys.platform != 'win32':
        term_handler.setFormatter(TerminalFormatter(**term_formatter_args))
    else:
        term_handler.setFormatter(logging.Formatter(**term_formatter_args))
    root_logger.addHandler(term_handler)
    return term_handler


def configure_logger(args, term_handler):
    root_logger = logging.getLogger()

    file_formatter_args = {"style": "{",
        "fmt": "[{asctime:s}] {levelname:s}: {name:s}: {message:s}"}
    file_handler = None
    if args.log_file:
        file_handler = logging.StreamHandler(args.log_file)
        file_handler.setFormatter(logging.Formatter(**file_formatter_args))
        root_logger.addHandler(file_handler)

    level = logging.INFO + args.quiet * 10 - args.verbose * 10
    if level < 0 or args.no_shorten:
        dump_hex.limit = dump_bin.limit = None

    if args.log_file or args.filter_log:
        term_handler.addFilter(SubjectFilter(level, args.filter_log))
        root_logger.setLevel(logging.TRACE)
    else:
        root_logger.setLevel(level)
    return file_handler


def _check_format(file, kind):
    try:
        autodetect(file)
    except ValueError:
        raise ICPError(f"cannot determine {kind} file format")


def _load_image(file, kind):
    _check_format(file, kind)
    return combine_chunks(input_data(file))


def _create_lines(args):
    if args.simulate:
        return SimulatedN76(devices_by_name[args.simulate_device])

    try:
        from .gpio.rpi import RPiLineDriver
    except (ImportError, RuntimeError) as e:
        raise LineFault(f"GPIO lines are not available: {e}") from e
    return RPiLineDriver(logging.getLogger("n76icp.gpio.rpi"),
                         dat=args.dat, clk=args.clk, rst=args.rst)


def _report_progress(done, total):
    logger.info("written %d/%d bytes", done, total)


def interact(args, iface):
    identity = iface.identify()
    logger.info("device: %s", identity)

    if args.operation == "identify":
        config = ConfigRecord(iface.read_configuration())
        logger.info("configuration: %s (%s)", config.raw.hex(), config)
        return

    if not identity.known and not args.force:
        raise ICPError("cannot operate on unknown device; use --force to override")

    flash_size = args.flash_size
    if flash_size is None:
        if identity.device is None:
            raise ICPError("flash size of unknown device must be given with --flash-size")
        flash_size = identity.device.flash_size

    if args.operation == "read":
        config = ConfigRecord(iface.read_configuration())
        if args.config:
            logger.info("configuration: %s (%s)", config.raw.hex(), config)
        try:
            aprom, ldrom = flash_regions(flash_size, config.ldrom_size)
        except ValueError as e:
            raise ICPError(e) from e

        if args.aprom:
            _check_format(args.aprom, "APROM")
            logger.info("reading APROM (%d bytes)", aprom.length)
            output_data(args.aprom, read_flash(iface, aprom))

        if args.ldrom:
            _check_format(args.ldrom, "LDROM")
            if ldrom.length == 0:
                raise ICPError("device has no LDROM configured")
            logger.info("reading LDROM (%d bytes)", ldrom.length)
            output_data(args.ldrom, read_flash(iface, ldrom))

    if args.operation == "write":
        if args.aprom is None and args.ldrom is None:
            raise ICPError("nothing to write; give an APROM image and/or --ldrom")
        aprom_image = None if args.aprom is None else _load_image(args.aprom, "APROM")
        ldrom_image = None if args.ldrom is None else _load_image(args.ldrom, "LDROM")
        try:
            aprom, ldrom = program_flash(iface, flash_size=flash_size,
                                         aprom=aprom_image, ldrom=ldrom_image,
                                         erase=args.erase, verify=args.verify,
                                         progress=_report_progress)
        except ValueError as e:
            raise ICPError(e) from e
        logger.info("APROM %d bytes, LDROM %d bytes", aprom.length, ldrom.length)

    if args.operation == "write-config":
        try:
            config = ConfigRecord(args.config)
        except ValueError as e:
            raise ICPError(e) from e
        logger.info("writing configuration (%s)", config)
        iface.erase_configuration()
        iface.write_configuration(config.raw)
        iface.verify_region(CONFIG, CONFIG.base_address, config.raw)

    if args.operation == "erase":
        erase_chip(iface)
        logger.info("device erased")


def main(args=None):
    term_handler = create_logger()
    file_handler = None
    open_files   = []

    try:
        args = get_argparser().parse_args(args)
        open_files = [file for file in (args.log_file, args.trace_vcd) if file is not None]
        file_handler = configure_logger(args, term_handler)

        lines = _create_lines(args)
        if args.trace_vcd:
            lines = VCDLineDriver(lines, args.trace_vcd)

        with lines:
            icp_logger = logging.getLogger("n76icp.programmer")
            with ICPSession(icp_logger, lines) as session:
                interact(args, ProgramN76Interface(icp_logger, session))

        if isinstance(lines, VCDLineDriver):
            lines = lines.lower
        if isinstance(lines, SimulatedN76) and lines.violations:
            for violation in lines.violations:
                logger.error("simulated target: %s", violation)
            return 1

    # Device-related errors
    except LineFault as e:
        logger.error("line fault: %s", e)
        return 1

    # Operation-related errors
    except ICPError as e:
        logger.error(e)
        return 1

    # User interruption
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return 130 # 128 + SIGINT

    finally:
        root_logger = logging.getLogger()
        root_logger.removeHandler(term_handler)
        if file_handler is not None:
            root_logger.removeHandler(file_handler)
        for file in open_files:
            file.close()

    return 0


# This entry point is invoked via `console_scripts` when installing the package.
def run_main():
    exit(main())


# This entry point is invoked when running `python -m n76icp.cli`.
if __name__ == "__main__":
    run_main()
