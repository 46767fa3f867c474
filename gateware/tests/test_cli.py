import os
import tempfile
import unittest

from serial_bus.cli import main


class CLITests(unittest.TestCase):
    def test_generate_rtlil(self):
        for topology in ("single", "bridged", "dual"):
            with self.subTest(topology=topology), tempfile.TemporaryDirectory() as tmp:
                path = os.path.join(tmp, "top.il")
                self.assertEqual(main(["-q", "generate", "--topology", topology, path]), 0)
                with open(path) as f:
                    self.assertIn("module \\top", f.read())

    def test_simulate(self):
        self.assertEqual(main(["-q", "simulate"]), 0)
        self.assertEqual(main(["-q", "simulate", "--selector", "2", "--offset", "0x123",
                               "--data", "0x5a"]), 0)

    def test_simulate_bad_address(self):
        self.assertEqual(main(["-q", "-q", "simulate", "--selector", "16"]), 1)


if __name__ == "__main__":
    unittest.main()
