import unittest
from tinymodbusmaster import WordBuffer, ModbusFrame, Status


class WordBufferTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.buffer = WordBuffer(64)

    def test_defaults_to_zero(self):
        self.assertEqual(len(self.buffer), 64)
        self.assertEqual(self.buffer.capacity, 64)
        self.assertEqual([self.buffer.get(i) for i in range(64)], [0] * 64)

    def test_last_index(self):
        self.assertEqual(self.buffer.set(63, 0xABCD), Status.SUCCESS)
        self.assertEqual(self.buffer.get(63), 0xABCD)

    def test_index_past_capacity(self):
        self.assertEqual(self.buffer.set(64, 0xABCD), Status.ILLEGAL_DATA_ADDRESS)
        self.assertEqual(self.buffer.get(64), 0xFFFF)

    def test_negative_index(self):
        """Negative indices must not wrap around to the end of the buffer"""
        self.buffer.set(63, 0x1111)
        self.assertEqual(self.buffer.set(-1, 0xABCD), Status.ILLEGAL_DATA_ADDRESS)
        self.assertEqual(self.buffer.get(-1), 0xFFFF)
        self.assertEqual(self.buffer.get(63), 0x1111)

    def test_overflowed_index(self):
        self.assertEqual(self.buffer.set(0x100, 1), Status.ILLEGAL_DATA_ADDRESS)
        self.assertEqual(self.buffer.get(0x100), 0xFFFF)

    def test_value_out_of_range(self):
        self.assertEqual(self.buffer.set(0, 0x10000), Status.ILLEGAL_DATA_VALUE)
        self.assertEqual(self.buffer.get(0), 0)

    def test_get_is_idempotent(self):
        self.buffer.set(5, 42)
        self.assertEqual(self.buffer.get(5), self.buffer.get(5))

    def test_clear(self):
        for index in range(64):
            self.buffer.set(index, index + 1)
        self.buffer.clear()
        self.assertEqual([self.buffer.get(i) for i in range(64)], [0] * 64)


class ModbusFrameTestCase(unittest.TestCase):

    def test_append_word_is_big_endian(self):
        frame = ModbusFrame()
        frame.append(0x01)
        frame.append_word(0x1234)
        self.assertEqual(bytes(frame), b"\x01\x12\x34")
        self.assertEqual(frame[-1], 0x34)
        self.assertEqual(frame[1:], b"\x12\x34")

    def test_capacity(self):
        frame = ModbusFrame()
        for byte in range(ModbusFrame.CAPACITY + 4):
            frame.append(byte)
        self.assertEqual(len(frame), ModbusFrame.CAPACITY)
        self.assertTrue(frame.truncated)
        self.assertEqual(frame[-1], 0xFF)

    def test_clear(self):
        frame = ModbusFrame()
        frame.append_word(0xFFFF)
        frame.clear()
        self.assertEqual(len(frame), 0)
        self.assertFalse(frame.truncated)
        with self.assertRaises(IndexError):
            frame[0]


if __name__ == "__main__":
    unittest.main()
