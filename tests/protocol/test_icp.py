import math
import unittest

from n76icp.protocol.icp import *


class CommandEncodingTestCase(unittest.TestCase):
    def test_single_operand(self):
        self.assertEqual(encode_single_operand(Opcode.BYTE_READ, 0x1234), 0x048d00)
        self.assertEqual(encode_single_operand(Opcode.READ_DEVICE_ID, 0), 0x00000c)
        self.assertEqual(encode_single_operand(Opcode.BYTE_WRITE, CONFIG_ADDR), 0xc00021)

    def test_single_operand_widest(self):
        self.assertEqual(encode_single_operand(Opcode.BYTE_WRITE, 0x3ffff), (0x3ffff << 6) | 0x21)
        with self.assertRaises(ValueError):
            encode_single_operand(Opcode.BYTE_WRITE, 0x40000)
        with self.assertRaises(ValueError):
            encode_single_operand(Opcode.BYTE_READ, 1 << 24)

    def test_single_operand_invalid(self):
        with self.assertRaises(ValueError):
            encode_single_operand(0x40, 0)
        with self.assertRaises(ValueError):
            encode_single_operand(Opcode.BYTE_READ, -1)

    def test_decode(self):
        self.assertEqual(decode_single_operand(0x048d00), (Opcode.BYTE_READ, 0x1234))
        self.assertEqual(decode_single_operand(
            encode_single_operand(Opcode.MASS_ERASE, MASS_ERASE_KEY)),
            (Opcode.MASS_ERASE, MASS_ERASE_KEY))

    def test_two_operand(self):
        self.assertEqual(encode_two_operand(0x61, 0x12, 0x34), 0x611234)

    def test_two_operand_invalid(self):
        with self.assertRaises(ValueError):
            encode_two_operand(0x61, 0x100, 0)

    def test_patterns(self):
        self.assertEqual(ENTRY_PATTERN.bit_length(), ENTRY_PATTERN_BITS)
        self.assertLess(UNLOCK_WORD, 1 << COMMAND_BITS)
        self.assertEqual(EXIT_PATTERN.bit_length(), 20)


class RegionTestCase(unittest.TestCase):
    def test_contains(self):
        self.assertTrue(CONFIG.contains(CONFIG_ADDR, 5))
        self.assertFalse(CONFIG.contains(CONFIG_ADDR, 6))
        self.assertFalse(CONFIG.contains(CONFIG_ADDR - 1))
        self.assertEqual(CONFIG.end_address, CONFIG_ADDR + 5)

    def test_flash_regions(self):
        aprom, ldrom = flash_regions(18 * 1024, 2048)
        self.assertEqual((aprom.base_address, aprom.length), (0, 16 * 1024))
        self.assertEqual((ldrom.base_address, ldrom.length), (16 * 1024, 2048))
        self.assertEqual(ldrom.name, "LDROM")

    def test_flash_regions_no_ldrom(self):
        aprom, ldrom = flash_regions(16 * 1024)
        self.assertEqual(aprom.length, 16 * 1024)
        self.assertEqual(ldrom.length, 0)

    def test_flash_regions_invalid(self):
        with self.assertRaises(ValueError):
            flash_regions(16 * 1024, 1500)
        with self.assertRaises(ValueError):
            flash_regions(16 * 1024, 5 * 1024)
        with self.assertRaises(ValueError):
            flash_regions(2048, 3072)


class LDROMSizeTestCase(unittest.TestCase):
    def test_size_kb(self):
        self.assertEqual(ldrom_size_kb(1), 1)
        self.assertEqual(ldrom_size_kb(1024), 1)
        self.assertEqual(ldrom_size_kb(1500), 2)
        self.assertEqual(ldrom_size_kb(4096), 4)

    def test_size_kb_invalid(self):
        with self.assertRaises(ValueError):
            ldrom_size_kb(0)
        with self.assertRaises(ValueError):
            ldrom_size_kb(4097)

    def test_selector(self):
        self.assertEqual(ldrom_size_selector(ldrom_size_kb(1500)), 5)
        self.assertEqual(ldrom_size_selector(0), 7)
        self.assertEqual(ldrom_size_selector(4), 3)

    def test_every_image_size(self):
        for size in range(1, LDROM_MAX_SIZE + 1):
            size_kb = ldrom_size_kb(size)
            self.assertEqual(size_kb, math.ceil(size / 1024), size)
            self.assertEqual(ldrom_size_selector(size_kb), (7 - size_kb) & 7, size)
            self.assertEqual(ConfigRecord.for_ldrom_boot(size_kb).ldrom_size, size_kb * 1024, size)


class ConfigRecordTestCase(unittest.TestCase):
    def test_erased(self):
        config = ConfigRecord(b"\xff" * 5)
        self.assertFalse(config.boot_from_ldrom)
        self.assertFalse(config.locked)
        self.assertEqual(config.ldrom_size, 0)
        self.assertEqual(str(config), "boot=APROM ldrom=0 bytes")

    def test_ldrom_boot(self):
        config = ConfigRecord.for_ldrom_boot(2)
        self.assertEqual(config.raw, bytes([0x7f, 0xfd, 0xff, 0xff, 0xff]))
        self.assertTrue(config.boot_from_ldrom)
        self.assertEqual(config.ldrom_size, 2048)

    def test_ldsize_saturates(self):
        self.assertEqual(ConfigRecord(bytes([0xff, 0xf8, 0xff, 0xff, 0xff])).ldrom_size, 4096)
        self.assertEqual(ConfigRecord(bytes([0xff, 0xf9, 0xff, 0xff, 0xff])).ldrom_size, 4096)

    def test_locked(self):
        config = ConfigRecord(bytes([0xfd, 0xff, 0xff, 0xff, 0xff]))
        self.assertTrue(config.locked)
        self.assertTrue(str(config).endswith(" locked"))

    def test_raw_is_bytes(self):
        self.assertIsInstance(ConfigRecord(bytearray(5)).raw, bytes)

    def test_invalid_length(self):
        with self.assertRaises(ValueError):
            ConfigRecord(b"\xff" * 4)


class TimingTestCase(unittest.TestCase):
    def test_profiles(self):
        self.assertEqual(TIMINGS["write"].data_setup_us, 200)
        self.assertEqual(TIMINGS["write"].clock_hold_us, 50)
        self.assertEqual(TIMINGS["mass_erase"].data_setup_us, 100000)
        for name, profile in TIMINGS.items():
            self.assertEqual(profile.name, name)
