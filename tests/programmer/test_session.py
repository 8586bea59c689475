import logging
import unittest

from n76icp.gpio import *
from n76icp.protocol.icp import *
from n76icp.programmer import *
from n76icp.simulation.target import SimulatedN76


class ICPSessionTestCase(unittest.TestCase):
    def setUp(self):
        self.target = SimulatedN76()
        self.target.open()
        self.logger = logging.getLogger(__name__)
        self.session = ICPSession(self.logger, self.target)
        self.iface = ProgramN76Interface(self.logger, self.session)

    def test_idle(self):
        self.assertEqual(self.session.mode, Mode.Idle)
        self.assertFalse(self.session.mode.active)
        with self.assertRaises(ICPStateError):
            self.iface.read_device_id()
        with self.assertRaises(ICPStateError):
            self.iface.read_region(APROM, 0, 0, bytearray())
        with self.assertRaises(ICPStateError):
            self.iface.mass_erase()
        with self.assertRaises(ICPStateError):
            self.session.exit()
        self.assertEqual(self.target.commands, [])

    def test_enter(self):
        self.session.enter()
        self.assertEqual(self.session.mode, Mode.Entered)
        self.assertTrue(self.target.in_programming_mode)
        self.assertEqual(self.target.delays,
                         [ENTRY_TICK_US] * ENTRY_PATTERN_BITS + [ENTRY_SETTLE_US])

    def test_enter_twice(self):
        self.session.enter()
        with self.assertRaises(ICPStateError):
            self.session.enter()

    def test_programming(self):
        self.session.enter()
        self.iface.read_device_id()
        self.assertEqual(self.session.mode, Mode.Entered)
        self.iface.erase_page(APROM, 0)
        self.assertEqual(self.session.mode, Mode.Programming)

    def test_reinitialize(self):
        self.session.enter()
        self.iface.mass_erase()
        del self.target.delays[:]
        self.session.reinitialize()
        self.assertEqual(self.target.delays,
                         [RESET_HOLD_US, RESET_RELEASE_US, UNLOCK_SETTLE_US])
        self.assertEqual(self.session.mode, Mode.Entered)
        self.assertEqual(self.iface.read_company_id(), 0xda)

    def test_reinitialize_idle(self):
        with self.assertRaises(ICPStateError):
            self.session.reinitialize()

    def test_exit(self):
        self.session.enter()
        del self.target.delays[:]
        self.session.exit()
        self.assertEqual(self.session.mode, Mode.Exited)
        self.assertEqual(self.target.delays, [RESET_HOLD_US, EXIT_RELEASE_US, EXIT_SETTLE_US])
        self.assertTrue(self.target.running)

    def test_exit_once(self):
        self.session.enter()
        self.session.exit()
        with self.assertRaises(ICPStateError):
            self.session.exit()
        with self.assertRaises(ICPStateError):
            self.iface.read_company_id()
        with self.assertRaises(ICPStateError):
            self.session.enter()

    def test_context(self):
        with self.session as session:
            self.assertIs(session, self.session)
            self.assertTrue(self.target.in_programming_mode)
        self.assertEqual(self.session.mode, Mode.Exited)
        self.assertTrue(self.target.running)

    def test_context_error(self):
        with self.assertRaises(VerificationError):
            with self.session:
                raise VerificationError(0, 0x00, 0xff)
        self.assertEqual(self.session.mode, Mode.Exited)
        self.assertTrue(self.target.running)

    def test_context_line_fault(self):
        with self.assertRaises(LineFault):
            with self.session:
                raise LineFault("disconnected")
        self.assertEqual(self.session.mode, Mode.Exited)
        self.assertFalse(self.target.running)

    def test_context_exited(self):
        with self.session:
            self.session.exit()
        self.assertEqual(self.session.mode, Mode.Exited)

    def test_mode_str(self):
        self.assertEqual(str(Mode.Programming), "programming")
