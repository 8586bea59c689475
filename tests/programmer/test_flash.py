import logging
import unittest

from n76icp.protocol.icp import *
from n76icp.database.nuvoton.n76 import *
from n76icp.programmer import *
from n76icp.programmer.flash import *
from n76icp.simulation.target import SimulatedN76


class CombineChunksTestCase(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(combine_chunks([]), b"")

    def test_gaps(self):
        self.assertEqual(combine_chunks([(3, b"\x02"), (0, b"\x01")]),
                         b"\x01\xff\xff\x02")

    def test_base(self):
        self.assertEqual(combine_chunks([(0x102, b"\x01")], base=0x100), b"\xff\xff\x01")

    def test_below_base(self):
        with self.assertRaises(ICPError):
            combine_chunks([(0, b"\x01")], base=0x100)


class FlashWorkflowTestCase(unittest.TestCase):
    def setUp(self):
        self.target = SimulatedN76(devices_by_name["n76e003"])
        self.target.open()
        logger = logging.getLogger(__name__)
        self.session = ICPSession(logger, self.target)
        self.iface = ProgramN76Interface(logger, self.session)
        self.session.enter()

    def test_program_aprom(self):
        self.target.flash[:] = bytes(len(self.target.flash))
        image = bytes(range(256)) * 4
        aprom, ldrom = program_flash(self.iface, flash_size=18 * 1024, aprom=image)
        self.assertEqual((aprom.length, ldrom.length), (18 * 1024, 0))
        self.assertEqual(self.target.flash[:len(image)], image)
        self.assertEqual(self.target.flash[len(image):], b"\xff" * (18 * 1024 - len(image)))
        self.assertEqual(self.target.violations, [])

    def test_program_ldrom_and_aprom(self):
        aprom_image = b"\x12" * 1000
        ldrom_image = b"\x34" * 1500
        aprom, ldrom = program_flash(self.iface, flash_size=18 * 1024,
                                     aprom=aprom_image, ldrom=ldrom_image)
        self.assertEqual((aprom.base_address, aprom.length), (0, 16 * 1024))
        self.assertEqual((ldrom.base_address, ldrom.length), (16 * 1024, 2 * 1024))
        self.assertEqual(self.target.flash[:1000], aprom_image)
        self.assertEqual(self.target.flash[16 * 1024:16 * 1024 + 1500], ldrom_image)
        self.assertEqual(self.target.config, bytes([0x7f, 0xfd, 0xff, 0xff, 0xff]))
        self.assertEqual(self.target.violations, [])

        config = ConfigRecord(self.iface.read_configuration())
        self.assertTrue(config.boot_from_ldrom)
        self.assertEqual(config.ldrom_size, 2048)

    def test_program_without_erase(self):
        self.target.config[:] = bytes(5)
        program_flash(self.iface, flash_size=18 * 1024, ldrom=b"\x00" * 10, erase=False)
        self.assertEqual(self.target.config, bytes([0x7f, 0xfe, 0xff, 0xff, 0xff]))
        opcodes = [opcode for opcode, _ in self.target.commands]
        self.assertNotIn(Opcode.MASS_ERASE, opcodes)

    def test_program_verify_failure(self):
        self.target.flash[:] = bytes(len(self.target.flash))
        with self.assertRaises(VerificationError) as cm:
            program_flash(self.iface, flash_size=18 * 1024, aprom=b"\xff\xff", erase=False)
        self.assertEqual(cm.exception.address, 0)

    def test_program_no_verify(self):
        self.target.flash[:] = bytes(len(self.target.flash))
        program_flash(self.iface, flash_size=18 * 1024, aprom=b"\xff\xff",
                      erase=False, verify=False)
        opcodes = [opcode for opcode, _ in self.target.commands]
        self.assertNotIn(Opcode.BYTE_READ, opcodes)

    def test_program_too_large(self):
        with self.assertRaises(ICPError):
            program_flash(self.iface, flash_size=18 * 1024,
                          aprom=bytes(17 * 1024), ldrom=bytes(2048))
        self.assertEqual(self.target.commands, [])

    def test_program_ldrom_too_large(self):
        with self.assertRaises(ValueError):
            program_flash(self.iface, flash_size=18 * 1024, ldrom=bytes(4097))

    def test_progress(self):
        calls = []
        program_flash(self.iface, flash_size=18 * 1024, aprom=bytes(300),
                      progress=lambda done, total: calls.append((done, total)))
        self.assertEqual(calls, [(256, 300), (300, 300)])

    def test_read_flash(self):
        _, ldrom = flash_regions(18 * 1024, 1024)
        self.assertEqual(ldrom.base_address, 17 * 1024)
        self.target.flash[17 * 1024:17 * 1024 + 4] = b"\x01\x02\x03\x04"
        data = read_flash(self.iface, ldrom)
        self.assertEqual(len(data), 1024)
        self.assertEqual(data[:5], b"\x01\x02\x03\x04\xff")
        self.assertEqual(read_flash(self.iface, ldrom, 17 * 1024 + 2, 2), b"\x03\x04")

    def test_erase_chip(self):
        self.target.flash[:] = bytes(len(self.target.flash))
        self.target.sprom[:] = bytes(len(self.target.sprom))
        self.target.config[:] = bytes(5)
        erase_chip(self.iface)
        self.assertEqual(self.target.commands, [
            (Opcode.PAGE_ERASE, CONFIG_ADDR),
            (Opcode.PAGE_ERASE, SPROM.base_address),
            (Opcode.MASS_ERASE, MASS_ERASE_KEY),
        ])
        self.assertEqual(self.target.flash, b"\xff" * 18 * 1024)
        self.assertEqual(self.target.config, b"\xff" * 5)
        self.assertEqual(self.target.sprom, b"\xff" * 128)
        self.assertEqual(self.target.violations, [])
