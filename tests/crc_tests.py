import unittest
from tinymodbusmaster import calculate_crc, crc_bytes, raise_for_status, Status, \
    InvalidSlaveId, InvalidFunction, ServerNoResponse, FailedCRCValidation, ModbusExceptionResponse


class CrcTestCase(unittest.TestCase):

    def test_seed(self):
        self.assertEqual(calculate_crc(b""), 0xFFFF)

    def test_reference_vectors(self):
        vectors = {
            b"\x01\x03\x00\x00\x00\x0A": b"\xC5\xCD",
            b"\x01\x03\x00\x00\x00\x01": b"\x84\x0A",
            b"\x11\x03\x00\x6B\x00\x03": b"\x76\x87",
            b"\x01\x05\x00\x00\xFF\x00": b"\x8C\x3A",
            b"\x01\x83\x02": b"\xC0\xF1"}
        for message, expected in vectors.items():
            with self.subTest(message=message.hex()):
                self.assertEqual(crc_bytes(message), expected)

    def test_crc_is_low_byte_first(self):
        self.assertEqual(calculate_crc(b"\x01\x03\x00\x00\x00\x0A"), 0xCDC5)

    def test_frame_with_crc_checks_to_zero(self):
        message = b"\x01\x06\x00\x01\x00\x03"
        self.assertEqual(calculate_crc(message + crc_bytes(message)), 0x0000)


class RaiseForStatusTestCase(unittest.TestCase):

    def test_success(self):
        self.assertIsNone(raise_for_status(Status.SUCCESS))

    def test_local_failures(self):
        expected = {
            Status.INVALID_SLAVE_ID: InvalidSlaveId,
            Status.INVALID_FUNCTION: InvalidFunction,
            Status.RESPONSE_TIMED_OUT: ServerNoResponse,
            Status.INVALID_CRC: FailedCRCValidation}
        for status, exception in expected.items():
            with self.subTest(status=status):
                with self.assertRaises(exception) as context:
                    raise_for_status(status)
                self.assertEqual(context.exception.status, status)

    def test_slave_exception(self):
        with self.assertRaises(ModbusExceptionResponse) as context:
            raise_for_status(0x02)
        self.assertEqual(context.exception.exception_code, Status.ILLEGAL_DATA_ADDRESS)
        self.assertIn("ILLEGAL_DATA_ADDRESS", str(context.exception))

    def test_unknown_slave_exception(self):
        with self.assertRaises(ModbusExceptionResponse) as context:
            raise_for_status(0x0C)
        self.assertIn("UNKNOWN", str(context.exception))


if __name__ == "__main__":
    unittest.main()
