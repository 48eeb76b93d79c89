import enum
import logging
import sys
import time
from typing import Callable, Iterator, Optional, Union

import serial

__author__ = "Keil Hubbard"
__license__ = "MIT"
__version__ = "0.1.0"

if sys.version_info < (3, 8, 0):
    raise ImportError("Python Version Must be >=3.8.0")

logger = logging.getLogger(__name__)


class FunctionCode(enum.IntEnum):
    """Modbus function codes supported by ModbusMaster"""
    READ_COILS = 0x01
    READ_DISCRETE_INPUTS = 0x02
    READ_HOLDING_REGISTERS = 0x03
    READ_INPUT_REGISTERS = 0x04
    WRITE_SINGLE_COIL = 0x05
    WRITE_SINGLE_REGISTER = 0x06
    WRITE_MULTIPLE_COILS = 0x0F
    WRITE_MULTIPLE_REGISTERS = 0x10
    MASK_WRITE_REGISTER = 0x16
    READ_WRITE_MULTIPLE_REGISTERS = 0x17


class Status(enum.IntEnum):
    """
    Transaction status codes

    Values below 0xE0 are Modbus exception codes reported by the slave (or, for
    ILLEGAL_DATA_ADDRESS / ILLEGAL_DATA_VALUE, by the local buffers).
    Values from 0xE0 up are raised locally by the transaction engine.
    """
    SUCCESS = 0x00
    ILLEGAL_FUNCTION = 0x01
    ILLEGAL_DATA_ADDRESS = 0x02
    ILLEGAL_DATA_VALUE = 0x03
    SLAVE_DEVICE_FAILURE = 0x04
    ACKNOWLEDGE = 0x05
    SLAVE_DEVICE_BUSY = 0x06
    MEMORY_PARITY_ERROR = 0x08
    GATEWAY_PATH_UNAVAILABLE = 0x0A
    GATEWAY_TARGET_FAILED = 0x0B

    INVALID_SLAVE_ID = 0xE0
    INVALID_FUNCTION = 0xE1
    RESPONSE_TIMED_OUT = 0xE2
    INVALID_CRC = 0xE3


def _as_status(code: int) -> int:
    """Exception codes without a Status member are passed through as plain ints"""
    try:
        return Status(code)
    except ValueError:
        return code


# --- CRC16 --- #

_CRC_TABLE = [0, 49345, 49537, 320, 49921, 960, 640, 49729, 50689, 1728, 1920, 51009, 1280, 50625, 50305, 1088,
              52225, 3264, 3456, 52545, 3840, 53185, 52865, 3648, 2560, 51905, 52097, 2880, 51457, 2496, 2176,
              51265, 55297, 6336, 6528, 55617, 6912, 56257, 55937, 6720, 7680, 57025, 57217, 8000, 56577, 7616,
              7296, 56385, 5120, 54465, 54657, 5440, 55041, 6080, 5760, 54849, 53761, 4800, 4992, 54081, 4352,
              53697, 53377, 4160, 61441, 12480, 12672, 61761, 13056, 62401, 62081, 12864, 13824, 63169, 63361,
              14144, 62721, 13760, 13440, 62529, 15360, 64705, 64897, 15680, 65281, 16320, 16000, 65089, 64001,
              15040, 15232, 64321, 14592, 63937, 63617, 14400, 10240, 59585, 59777, 10560, 60161, 11200, 10880,
              59969, 60929, 11968, 12160, 61249, 11520, 60865, 60545, 11328, 58369, 9408, 9600, 58689, 9984, 59329,
              59009, 9792, 8704, 58049, 58241, 9024, 57601, 8640, 8320, 57409, 40961, 24768, 24960, 41281, 25344,
              41921, 41601, 25152, 26112, 42689, 42881, 26432, 42241, 26048, 25728, 42049, 27648, 44225, 44417,
              27968, 44801, 28608, 28288, 44609, 43521, 27328, 27520, 43841, 26880, 43457, 43137, 26688, 30720,
              47297, 47489, 31040, 47873, 31680, 31360, 47681, 48641, 32448, 32640, 48961, 32000, 48577, 48257,
              31808, 46081, 29888, 30080, 46401, 30464, 47041, 46721, 30272, 29184, 45761, 45953, 29504, 45313,
              29120, 28800, 45121, 20480, 37057, 37249, 20800, 37633, 21440, 21120, 37441, 38401, 22208, 22400,
              38721, 21760, 38337, 38017, 21568, 39937, 23744, 23936, 40257, 24320, 40897, 40577, 24128, 23040,
              39617, 39809, 23360, 39169, 22976, 22656, 38977, 34817, 18624, 18816, 35137, 19200, 35777, 35457,
              19008, 19968, 36545, 36737, 20288, 36097, 19904, 19584, 35905, 17408, 33985, 34177, 17728, 34561,
              18368, 18048, 34369, 33281, 17088, 17280, 33601, 16640, 33217, 32897, 16448]


def calculate_crc(data: bytes) -> int:
    """
    Calculates the Modbus crc16 (reflected polynomial 0xA001, seed 0xFFFF) of a message

    :param data: message bytes
    :return: crc16 value, low byte is transmitted first
    """
    crc = 0xFFFF
    for byte in data:
        crc = (crc >> 8) ^ _CRC_TABLE[(crc ^ byte) & 0xFF]
    return crc


def crc_bytes(data: bytes) -> bytes:
    """
    :param data: message bytes
    :return: crc16 of the message in wire order (low byte, high byte)
    """
    return calculate_crc(data).to_bytes(2, "little")


def monotonic_millis() -> int:
    return int(time.monotonic() * 1000)


# --- Buffers --- #

class WordBuffer:
    """
    Fixed capacity array of 16-bit words

    Out of range indices never raise: get() answers 0xFFFF and set() answers
    Status.ILLEGAL_DATA_ADDRESS, leaving the buffer untouched.
    """

    OUT_OF_RANGE_VALUE = 0xFFFF

    _words: list

    def __init__(self, capacity: int = 64):
        self._words = [0] * capacity

    @property
    def capacity(self) -> int:
        return len(self._words)

    def __len__(self) -> int:
        return len(self._words)

    def _in_range(self, index: int) -> bool:
        return isinstance(index, int) and 0 <= index < len(self._words)

    def get(self, index: int) -> int:
        if self._in_range(index):
            return self._words[index]
        return WordBuffer.OUT_OF_RANGE_VALUE

    def set(self, index: int, value: int) -> Status:
        if not self._in_range(index):
            return Status.ILLEGAL_DATA_ADDRESS
        if not 0 <= value <= 0xFFFF:
            return Status.ILLEGAL_DATA_VALUE
        self._words[index] = value
        return Status.SUCCESS

    def clear(self) -> None:
        for index in range(len(self._words)):
            self._words[index] = 0


class ModbusFrame:
    """
    Scratch buffer holding one Modbus RTU application data unit

    Storage is allocated once; bytes appended past CAPACITY are dropped and the
    frame is flagged as truncated.
    """

    CAPACITY = 256

    _data: bytearray
    _size: int
    truncated: bool

    def __init__(self):
        self._data = bytearray(ModbusFrame.CAPACITY)
        self._size = 0
        self.truncated = False

    def clear(self) -> None:
        self._size = 0
        self.truncated = False

    def append(self, byte: int) -> None:
        if self._size >= ModbusFrame.CAPACITY:
            self.truncated = True
            return
        self._data[self._size] = byte & 0xFF
        self._size += 1

    def append_word(self, word: int) -> None:
        """Appends a 16-bit field, high byte first"""
        self.append(word >> 8)
        self.append(word)

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, index: Union[int, slice]) -> Union[int, bytes]:
        if isinstance(index, slice):
            return bytes(self._data[:self._size][index])
        if index < 0:
            index += self._size
        if not 0 <= index < self._size:
            raise IndexError("frame index out of range")
        return self._data[index]

    def __bytes__(self) -> bytes:
        return bytes(self._data[:self._size])


class TransactionRequest:
    """Read/write fields consumed by the next call to ModbusMaster.execute()"""

    read_address: int
    read_quantity: int
    write_address: int
    write_quantity: int

    def __init__(self):
        self.read_address = 0
        self.read_quantity = 0
        self.write_address = 0
        self.write_quantity = 0


# --- Direction Control --- #

class DirectionControl:
    """
    Transmit enable line of a half duplex (RS485) link

    The base class drives nothing and is used when no line is configured.
    """

    def assert_line(self) -> None:
        pass

    def deassert_line(self) -> None:
        pass


class RtsDirectionControl(DirectionControl):
    """Drives the driver-enable pin of an RS485 transceiver through the serial RTS line"""

    def __init__(self, serial_connection: serial.Serial, active_high: bool = True):
        self._connection = serial_connection
        self._active_high = active_high
        self.deassert_line()

    def assert_line(self) -> None:
        self._connection.rts = self._active_high

    def deassert_line(self) -> None:
        self._connection.rts = not self._active_high


class ModbusMaster:
    """
    ModbusMaster Class for querying a single Modbus RTU slave

    Supports the Modbus RTU Protocol over RS232/RS485 as the master (client) side.
        NOT SUPPORTED: ASCII Protocol, Modbus over TCP, Slave role

    Each transaction is fully synchronous: the request is assembled from the
    request fields and the transmit buffer, sent, and the response is awaited
    for at most response_timeout milliseconds. Values decoded from read
    responses land in the response buffer starting at index 0.

    Transactions never raise for protocol failures, they return a status:
    Status.SUCCESS, a Modbus exception code from the slave, or one of the
    local INVALID_SLAVE_ID / INVALID_FUNCTION / RESPONSE_TIMED_OUT / INVALID_CRC
    codes. Use raise_for_status() to turn a status into an exception.

    See Official Modbus Documentation for RTU request formatting:
        https://www.modbustools.com/modbus.html
    """

    # Values Per Modbus Protocol
    _MINIMUM_FRAME_TIME_SECONDS = 0.00175
    _MINIMUM_CHARACTER_TIME = 3.5
    _BITS_PER_CHARACTER = 11

    MINIMUM_SLAVE_ID = 1
    MAXIMUM_SLAVE_ID = 255
    MINIMUM_TWO_BYTE_VALUE = 0x0000
    MAXIMUM_TWO_BYTE_VALUE = 0xFFFF

    MAXIMUM_MESSAGE_BYTES = ModbusFrame.CAPACITY
    DEFAULT_BUFFER_SIZE = 64
    DEFAULT_RESPONSE_TIMEOUT = 2000

    COIL_ON = 0xFF00
    COIL_OFF = 0x0000

    # Response Message Composition
    _SLAVE_ID_INDEX = 0
    _FUNCTION_CODE_INDEX = 1
    _BYTE_COUNT_INDEX = 2
    _EXCEPTION_CODE_INDEX = 2
    _RESPONSE_DATA_START_INDEX = 3
    _WRITE_QUANTITY_LOW_INDEX = 5
    _EXCEPTION_FLAG = 0x80

    # Enough to see the byte count of any read response
    _INITIAL_BYTES_LEFT = 8
    _HEADER_BYTES = 5

    _READ_FUNCTIONS = frozenset({
        FunctionCode.READ_COILS,
        FunctionCode.READ_DISCRETE_INPUTS,
        FunctionCode.READ_HOLDING_REGISTERS,
        FunctionCode.READ_INPUT_REGISTERS,
        FunctionCode.READ_WRITE_MULTIPLE_REGISTERS})

    _WRITE_FUNCTIONS = frozenset({
        FunctionCode.WRITE_SINGLE_COIL,
        FunctionCode.WRITE_SINGLE_REGISTER,
        FunctionCode.WRITE_MULTIPLE_COILS,
        FunctionCode.WRITE_MULTIPLE_REGISTERS,
        FunctionCode.MASK_WRITE_REGISTER,
        FunctionCode.READ_WRITE_MULTIPLE_REGISTERS})

    _BIT_READ_FUNCTIONS = frozenset({
        FunctionCode.READ_COILS,
        FunctionCode.READ_DISCRETE_INPUTS})

    _REGISTER_READ_FUNCTIONS = frozenset({
        FunctionCode.READ_HOLDING_REGISTERS,
        FunctionCode.READ_INPUT_REGISTERS,
        FunctionCode.READ_WRITE_MULTIPLE_REGISTERS})

    # Bytes still expected once the 5 byte header of a write acknowledgement is in
    _ACK_BYTES_LEFT = {
        FunctionCode.WRITE_SINGLE_COIL: 3,
        FunctionCode.WRITE_SINGLE_REGISTER: 3,
        FunctionCode.WRITE_MULTIPLE_COILS: 3,
        FunctionCode.MASK_WRITE_REGISTER: 5}

    _PAYLOAD_ENCODERS = {
        FunctionCode.WRITE_SINGLE_COIL: "_encode_single_coil",
        FunctionCode.WRITE_SINGLE_REGISTER: "_encode_single_register",
        FunctionCode.WRITE_MULTIPLE_COILS: "_encode_multiple_coils",
        FunctionCode.WRITE_MULTIPLE_REGISTERS: "_encode_multiple_registers",
        FunctionCode.READ_WRITE_MULTIPLE_REGISTERS: "_encode_multiple_registers",
        FunctionCode.MASK_WRITE_REGISTER: "_encode_mask_write"}

    _slave_id: int
    _connection: serial.Serial
    _direction_control: DirectionControl
    _response_timeout: int
    _clock: Callable[[], int]
    _frame_time: float
    _frame: ModbusFrame
    _transmit_buffer: WordBuffer
    _response_buffer: WordBuffer
    request: TransactionRequest

    def __init__(self,
                 slave_id: int,
                 serial_connection: serial.Serial,
                 direction_control: Optional[DirectionControl] = None,
                 response_timeout: int = DEFAULT_RESPONSE_TIMEOUT,
                 buffer_size: int = DEFAULT_BUFFER_SIZE,
                 clock: Callable[[], int] = monotonic_millis):
        """
        :param slave_id: Modbus slave id of the device addressed by this master (1..255)
        :param serial_connection: open pyserial connection (or any object with the same
            write/in_waiting/read/flush/baudrate interface)
        :param direction_control: optional RS485 transmit enable line
        :param response_timeout: milliseconds to wait for a complete response
        :param buffer_size: capacity in words of the transmit and response buffers
        :param clock: monotonic millisecond clock
        """
        ModbusMaster._validate_slave_id(slave_id)

        self._slave_id = slave_id
        self._connection = serial_connection
        self._direction_control = direction_control if direction_control is not None else DirectionControl()
        self._response_timeout = response_timeout
        self._clock = clock
        self._frame_time = ModbusMaster._calculate_frame_time(serial_connection.baudrate)

        self._frame = ModbusFrame()
        self._transmit_buffer = WordBuffer(buffer_size)
        self._response_buffer = WordBuffer(buffer_size)
        self.request = TransactionRequest()

    # --- Initialization Methods --- #

    @classmethod
    def open(cls,
             port: str,
             slave_id: int = 1,
             baudrate: int = 19200,
             parity: str = serial.PARITY_NONE,
             bytesize: int = serial.EIGHTBITS,
             stopbits: float = serial.STOPBITS_ONE,
             use_rts: bool = False,
             **kwargs) -> "ModbusMaster":
        """
        Opens a serial port and returns a master bound to it

        :param port: serial port name, e.g. /dev/ttyUSB0 or COM3
        :param slave_id: Modbus slave id to address
        :param baudrate: serial baudrate
        :param parity: serial parity
        :param bytesize: serial byte size
        :param stopbits: serial stop bits
        :param use_rts: drive the RS485 transmit enable line through RTS
        :param kwargs: forwarded to ModbusMaster()
        :return: ModbusMaster owning the opened connection
        """
        ModbusMaster._validate_slave_id(slave_id)

        connection = serial.Serial(port=port,
                                   baudrate=baudrate,
                                   parity=parity,
                                   bytesize=bytesize,
                                   stopbits=stopbits,
                                   timeout=0)
        direction_control = RtsDirectionControl(connection) if use_rts else None
        logger.info(f"Opened {port} at {baudrate} baud for slave {slave_id}")
        return cls(slave_id, connection, direction_control=direction_control, **kwargs)

    def close(self) -> None:
        self._connection.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @staticmethod
    def _calculate_frame_time(baudrate: int) -> float:
        """
        Calculates the appropriate silent frame time to be enforced between messages

        :param baudrate: serial baudrate
        :return: silent frame time
        """
        bit_time = 1 / baudrate
        return max((bit_time * ModbusMaster._BITS_PER_CHARACTER * ModbusMaster._MINIMUM_CHARACTER_TIME),
                   ModbusMaster._MINIMUM_FRAME_TIME_SECONDS)

    @property
    def slave_id(self) -> int:
        return self._slave_id

    @property
    def response_timeout(self) -> int:
        return self._response_timeout

    @property
    def transmit_buffer(self) -> WordBuffer:
        return self._transmit_buffer

    @property
    def response_buffer(self) -> WordBuffer:
        return self._response_buffer

    # --- Buffer Methods --- #

    def get_response_buffer(self, index: int) -> int:
        """
        :param index: index in the response buffer
        :return: word at index, 0xFFFF if index is out of range
        """
        return self._response_buffer.get(index)

    def clear_response_buffer(self) -> None:
        self._response_buffer.clear()

    def set_transmit_buffer(self, index: int, value: int) -> Status:
        """
        Stages a word to be sent by the next write transaction

        :param index: index in the transmit buffer
        :param value: word to stage (0x0000..0xFFFF)
        :return: Status.SUCCESS, Status.ILLEGAL_DATA_ADDRESS if index is out of range,
            Status.ILLEGAL_DATA_VALUE if value does not fit in 16 bits
        """
        return self._transmit_buffer.set(index, value)

    def clear_transmit_buffer(self) -> None:
        self._transmit_buffer.clear()

    # --- Transaction Engine --- #

    def execute(self, function_code: int) -> int:
        """
        Runs one Modbus transaction using the current request fields

        :param function_code: one of FunctionCode
        :return: Status.SUCCESS or the failure status / slave exception code
        """
        try:
            function_code = FunctionCode(function_code)
        except ValueError:
            raise IllegalFunctionCode(function_code) from None

        status = self._build_request(function_code)
        if status != Status.SUCCESS:
            logger.debug(f"Request for function {function_code:#04x} not sent: {status!r}")
            return status

        self._send()
        status = self._receive(function_code)

        if status == Status.SUCCESS:
            self._disassemble()
        else:
            logger.debug(f"Function {function_code:#04x} to slave {self._slave_id} failed: {_as_status(status)!r}")
        return status

    # --- Request Building/Encoding Methods --- #

    def _build_request(self, function_code: FunctionCode) -> Status:
        """
        Assembles the request ADU for function_code in the scratch frame, crc16 included

        :param function_code: function being requested
        :return: Status.SUCCESS, or Status.ILLEGAL_DATA_ADDRESS if the transmit buffer cannot supply the data
        """
        frame = self._frame
        frame.clear()
        frame.append(self._slave_id)
        frame.append(function_code)

        if function_code in ModbusMaster._READ_FUNCTIONS:
            frame.append_word(self.request.read_address)
            frame.append_word(self.request.read_quantity)

        if function_code in ModbusMaster._WRITE_FUNCTIONS:
            frame.append_word(self.request.write_address)

        encoder = ModbusMaster._PAYLOAD_ENCODERS.get(function_code)
        if encoder is not None:
            status = getattr(self, encoder)(frame)
            if status != Status.SUCCESS:
                return status

        for byte in crc_bytes(bytes(frame)):
            frame.append(byte)

        if frame.truncated:
            logger.warning(f"Request truncated to {ModbusMaster.MAXIMUM_MESSAGE_BYTES} bytes")
        return Status.SUCCESS

    def _encode_single_coil(self, frame: ModbusFrame) -> Status:
        frame.append_word(self.request.write_quantity)
        return Status.SUCCESS

    def _encode_single_register(self, frame: ModbusFrame) -> Status:
        frame.append_word(self._transmit_buffer.get(0))
        return Status.SUCCESS

    def _encode_multiple_coils(self, frame: ModbusFrame) -> Status:
        """
        Coil states are packed LSB first; even output bytes are the low byte of a
        transmit word and odd output bytes its high byte.
        """
        quantity = self.request.write_quantity
        byte_count = (quantity + 7) // 8
        if byte_count > 2 * self._transmit_buffer.capacity:
            return Status.ILLEGAL_DATA_ADDRESS

        frame.append_word(quantity)
        frame.append(byte_count)
        for i in range(byte_count):
            word = self._transmit_buffer.get(i >> 1)
            frame.append(word >> 8 if i % 2 else word)
        return Status.SUCCESS

    def _encode_multiple_registers(self, frame: ModbusFrame) -> Status:
        quantity = self.request.write_quantity
        if quantity > self._transmit_buffer.capacity:
            return Status.ILLEGAL_DATA_ADDRESS

        frame.append_word(quantity)
        frame.append(quantity * 2)
        for i in range(quantity):
            frame.append_word(self._transmit_buffer.get(i))
        return Status.SUCCESS

    def _encode_mask_write(self, frame: ModbusFrame) -> Status:
        frame.append_word(self._transmit_buffer.get(0))
        frame.append_word(self._transmit_buffer.get(1))
        return Status.SUCCESS

    # --- Request Send/Receive Methods --- #

    def _send(self) -> None:
        """
        Writes the assembled frame and blocks until it has left the UART

        The direction control line is released only after flush() returns.
        """
        message = bytes(self._frame)
        logger.debug(f"TX slave {self._slave_id}: {message.hex(' ')}")

        time.sleep(self._frame_time)

        self._direction_control.assert_line()
        try:
            self._connection.write(message)
            self._connection.flush()
        finally:
            self._direction_control.deassert_line()

    def _elapsed(self, start_time: int) -> int:
        return (self._clock() - start_time) & 0xFFFFFFFF

    def _receive(self, function_code: FunctionCode) -> int:
        """
        Collects the response into the scratch frame and validates it

        The number of bytes still expected starts at 8 and is recomputed from the
        response header once it is available.

        :param function_code: function that was requested
        :return: Status.SUCCESS or the failure status / slave exception code
        """
        frame = self._frame
        frame.clear()
        bytes_left = ModbusMaster._INITIAL_BYTES_LEFT
        status = Status.SUCCESS

        start_time = self._clock()
        while self._elapsed(start_time) < self._response_timeout and bytes_left > 0 and status == Status.SUCCESS:
            if not self._connection.in_waiting:
                continue
            data = self._connection.read(1)
            if not data:
                continue

            frame.append(data[0])
            bytes_left -= 1

            if len(frame) == ModbusMaster._HEADER_BYTES:
                status = self._validate_header(function_code)
                if status != Status.SUCCESS:
                    break
                # exception responses end at the header, whatever code they carry
                if frame[ModbusMaster._FUNCTION_CODE_INDEX] & ModbusMaster._EXCEPTION_FLAG:
                    break
                bytes_left = self._bytes_left_after_header(bytes_left)
            elif len(frame) == ModbusMaster._HEADER_BYTES + 1 and \
                    frame[ModbusMaster._FUNCTION_CODE_INDEX] == FunctionCode.WRITE_MULTIPLE_REGISTERS:
                bytes_left = frame[ModbusMaster._WRITE_QUANTITY_LOW_INDEX]

        logger.debug(f"RX slave {self._slave_id}: {bytes(frame).hex(' ')}")

        if status == Status.SUCCESS and (self._elapsed(start_time) >= self._response_timeout or
                                         len(frame) < ModbusMaster._HEADER_BYTES):
            status = Status.RESPONSE_TIMED_OUT

        if status == Status.SUCCESS and frame[-2:] != crc_bytes(frame[:-2]):
            status = Status.INVALID_CRC

        return status

    def _validate_header(self, function_code: FunctionCode) -> int:
        """
        Checks slave id, function code and exception flag of the first 5 response bytes

        :param function_code: function that was requested
        :return: Status.SUCCESS, a local failure status, or the slave's exception code
        """
        frame = self._frame
        if frame[ModbusMaster._SLAVE_ID_INDEX] != self._slave_id:
            return Status.INVALID_SLAVE_ID

        response_function = frame[ModbusMaster._FUNCTION_CODE_INDEX]
        if response_function & ~ModbusMaster._EXCEPTION_FLAG & 0xFF != function_code:
            return Status.INVALID_FUNCTION

        if response_function & ModbusMaster._EXCEPTION_FLAG:
            return _as_status(frame[ModbusMaster._EXCEPTION_CODE_INDEX])

        return Status.SUCCESS

    def _bytes_left_after_header(self, bytes_left: int) -> int:
        response_function = self._frame[ModbusMaster._FUNCTION_CODE_INDEX]
        if response_function in ModbusMaster._READ_FUNCTIONS:
            return self._frame[ModbusMaster._BYTE_COUNT_INDEX]
        return ModbusMaster._ACK_BYTES_LEFT.get(response_function, bytes_left)

    # --- Response Handling Methods --- #

    def _disassemble(self) -> None:
        """
        Copies the words of a validated read response into the response buffer

        Words past the buffer capacity are decoded but not stored.
        """
        frame = self._frame
        response_function = frame[ModbusMaster._FUNCTION_CODE_INDEX]
        if response_function in ModbusMaster._BIT_READ_FUNCTIONS:
            words = ModbusMaster._unpack_bit_words(frame)
        elif response_function in ModbusMaster._REGISTER_READ_FUNCTIONS:
            words = ModbusMaster._unpack_register_words(frame)
        else:
            return

        capacity = self._response_buffer.capacity
        for index, word in enumerate(words):
            if index < capacity:
                self._response_buffer.set(index, word)
            else:
                logger.debug(f"Response word {index} dropped, response buffer holds {capacity}")

    @staticmethod
    def _response_data(frame: ModbusFrame) -> bytes:
        start = ModbusMaster._RESPONSE_DATA_START_INDEX
        return frame[start:start + frame[ModbusMaster._BYTE_COUNT_INDEX]]

    @staticmethod
    def _unpack_bit_words(frame: ModbusFrame) -> Iterator[int]:
        """
        Bit responses are ordered L, H, L, H, ... so each byte pair is a little-endian
        word; an odd trailing byte becomes a zero padded final word.
        """
        data = ModbusMaster._response_data(frame)
        for i in range(0, len(data) - 1, 2):
            yield int.from_bytes(data[i:i + 2], "little")
        if len(data) % 2:
            yield data[-1]

    @staticmethod
    def _unpack_register_words(frame: ModbusFrame) -> Iterator[int]:
        data = ModbusMaster._response_data(frame)
        for i in range(0, len(data) - 1, 2):
            yield int.from_bytes(data[i:i + 2], "big")

    # --- Error Checking Methods --- #

    @staticmethod
    def _validate_slave_id(slave_id: int) -> None:
        if slave_id < IllegalSlaveId.min_value or slave_id > IllegalSlaveId.max_value:
            raise IllegalSlaveId(slave_id)
        return None

    @staticmethod
    def _validate_address(address: int) -> None:
        if address < IllegalAddress.min_value or address > IllegalAddress.max_value:
            raise IllegalAddress(address)
        return None

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if quantity < IllegalQuantity.min_value or quantity > IllegalQuantity.max_value:
            raise IllegalQuantity(quantity)
        return None

    @staticmethod
    def _validate_write_value(value: int) -> None:
        if value < IllegalWriteValue.min_value or value > IllegalWriteValue.max_value:
            raise IllegalWriteValue(value)
        return None

    def _set_read_request(self, address: int, quantity: int) -> None:
        ModbusMaster._validate_address(address)
        ModbusMaster._validate_quantity(quantity)
        self.request.read_address = address
        self.request.read_quantity = quantity

    def _set_write_request(self, address: int, quantity: int) -> None:
        ModbusMaster._validate_address(address)
        ModbusMaster._validate_quantity(quantity)
        self.request.write_address = address
        self.request.write_quantity = quantity

    # --- Public Methods --- #
    # --- Read Request Methods --- #

    def read_coils(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x01 Read Coils

        Coils are packed one per bit into the response buffer; the LSB of word 0 is
        the coil at address. A final partial word is zero padded toward the high end.

        :param address: address of the first coil
        :param quantity: count of coils to read (1..2000, enforced by the slave)
        :return: transaction status
        """
        self._set_read_request(address, quantity)
        return self.execute(FunctionCode.READ_COILS)

    def read_discrete_inputs(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x02 Read Discrete Inputs, packed like read_coils()

        :param address: address of the first discrete input
        :param quantity: count of inputs to read (1..2000, enforced by the slave)
        :return: transaction status
        """
        self._set_read_request(address, quantity)
        return self.execute(FunctionCode.READ_DISCRETE_INPUTS)

    def read_holding_registers(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x03 Read Holding Registers, one word per register

        :param address: address of the first holding register
        :param quantity: count of registers to read (1..125, enforced by the slave)
        :return: transaction status
        """
        self._set_read_request(address, quantity)
        return self.execute(FunctionCode.READ_HOLDING_REGISTERS)

    def read_input_registers(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x04 Read Input Registers, one word per register

        :param address: address of the first input register
        :param quantity: count of registers to read (1..125, enforced by the slave)
        :return: transaction status
        """
        self._set_read_request(address, quantity)
        return self.execute(FunctionCode.READ_INPUT_REGISTERS)

    # --- Write Request Methods --- #

    def write_single_coil(self, address: int, state: bool) -> int:
        """
        Modbus function 0x05 Write Single Coil

        :param address: coil address
        :param state: truthy for ON, falsy for OFF
        :return: transaction status
        """
        self._set_write_request(address, ModbusMaster.COIL_ON if state else ModbusMaster.COIL_OFF)
        return self.execute(FunctionCode.WRITE_SINGLE_COIL)

    def write_single_register(self, address: int, value: int) -> int:
        """
        Modbus function 0x06 Write Single Register

        :param address: holding register address
        :param value: value to write (0x0000..0xFFFF)
        :return: transaction status
        """
        ModbusMaster._validate_write_value(value)
        self._set_write_request(address, 0)
        self._transmit_buffer.set(0, value)
        return self.execute(FunctionCode.WRITE_SINGLE_REGISTER)

    def write_multiple_coils(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x0F Write Multiple Coils

        Coil states are taken from the transmit buffer, bit 0 of word 0 being the coil at address.

        :param address: address of the first coil
        :param quantity: count of coils to write (1..1968, enforced by the slave)
        :return: transaction status
        """
        self._set_write_request(address, quantity)
        return self.execute(FunctionCode.WRITE_MULTIPLE_COILS)

    def write_multiple_registers(self, address: int, quantity: int) -> int:
        """
        Modbus function 0x10 Write Multiple Registers, values taken from the transmit buffer

        :param address: address of the first holding register
        :param quantity: count of registers to write (1..123, enforced by the slave)
        :return: transaction status
        """
        self._set_write_request(address, quantity)
        return self.execute(FunctionCode.WRITE_MULTIPLE_REGISTERS)

    def mask_write_register(self, address: int, and_mask: int, or_mask: int) -> int:
        """
        Modbus function 0x16 Mask Write Register

        The slave stores (current AND and_mask) OR (or_mask AND NOT and_mask).

        :param address: holding register address
        :param and_mask: AND mask
        :param or_mask: OR mask
        :return: transaction status
        """
        ModbusMaster._validate_write_value(and_mask)
        ModbusMaster._validate_write_value(or_mask)
        self._set_write_request(address, 0)
        self._transmit_buffer.set(0, and_mask)
        self._transmit_buffer.set(1, or_mask)
        return self.execute(FunctionCode.MASK_WRITE_REGISTER)

    def read_write_multiple_registers(self,
                                      read_address: int,
                                      read_quantity: int,
                                      write_address: int,
                                      write_quantity: int) -> int:
        """
        Modbus function 0x17 Read/Write Multiple Registers

        The slave performs the write (values from the transmit buffer) before the read;
        the registers read land in the response buffer.

        :param read_address: address of the first register to read
        :param read_quantity: count of registers to read (1..125, enforced by the slave)
        :param write_address: address of the first register to write
        :param write_quantity: count of registers to write (1..121, enforced by the slave)
        :return: transaction status
        """
        self._set_read_request(read_address, read_quantity)
        self._set_write_request(write_address, write_quantity)
        return self.execute(FunctionCode.READ_WRITE_MULTIPLE_REGISTERS)


class TinyModbusError(Exception):
    """Base Class for all TinyModbus Related Exceptions"""
    pass


class IllegalValue(TinyModbusError):
    """Base Class for all TinyModbus Illegal Value Exceptions"""
    min_value = None
    max_value = None
    value = None

    def __init__(self, value: int):
        self.value = value

    def __str__(self):
        return f"{self.value} is not in the allowable range {self.min_value, self.max_value}"


class IllegalSlaveId(IllegalValue):
    """ModbusMaster has been passed a Slave ID outside the allowed range"""
    min_value = ModbusMaster.MINIMUM_SLAVE_ID
    max_value = ModbusMaster.MAXIMUM_SLAVE_ID


class IllegalFunctionCode(IllegalValue):
    """ModbusMaster has been asked to execute a Function Code it does not support"""

    def __str__(self):
        supported = ", ".join(f"{code:#04x}" for code in FunctionCode)
        return f"{self.value} is not a supported function code ({supported})"


class IllegalAddress(IllegalValue):
    """ModbusMaster has been passed a Register Address outside the allowed range"""
    min_value = ModbusMaster.MINIMUM_TWO_BYTE_VALUE
    max_value = ModbusMaster.MAXIMUM_TWO_BYTE_VALUE


class IllegalQuantity(IllegalValue):
    """ModbusMaster has been passed a Coil/Register Quantity outside the allowed range"""
    min_value = ModbusMaster.MINIMUM_TWO_BYTE_VALUE
    max_value = ModbusMaster.MAXIMUM_TWO_BYTE_VALUE


class IllegalWriteValue(IllegalValue):
    """ModbusMaster has been passed a Value to Write outside the allowed range"""
    min_value = ModbusMaster.MINIMUM_TWO_BYTE_VALUE
    max_value = ModbusMaster.MAXIMUM_TWO_BYTE_VALUE


class InvalidResponse(TinyModbusError):
    """Base Class for TinyModbus Invalid Response Exceptions"""

    def __init__(self, status: int):
        super().__init__(status)
        self.status = status


class InvalidSlaveId(InvalidResponse):
    """Response Came From a Different Slave Than the One Addressed"""
    def __str__(self):
        return "Response Came From a Different Slave Than the One Addressed"


class InvalidFunction(InvalidResponse):
    """Response Function Code Does Not Match the Request"""
    def __str__(self):
        return "Response Function Code Does Not Match the Request"


class ServerNoResponse(InvalidResponse):
    """No Complete Response Received From Slave Within Specified Timeout"""
    def __str__(self):
        return "No Complete Response Received From Slave Within Specified Timeout"


class FailedCRCValidation(InvalidResponse):
    """Response From the Slave Failed CRC16 Data Integrity Check"""
    def __str__(self):
        return "Response From the Slave Failed CRC16 Data Integrity Check"


class ModbusExceptionResponse(InvalidResponse):
    """Slave Rejected the Request With a Modbus Exception Code"""

    @property
    def exception_code(self) -> int:
        return self.status

    def __str__(self):
        status = _as_status(self.status)
        name = status.name if isinstance(status, Status) else "UNKNOWN"
        return f"Slave Responded With Exception {self.status:#04x} ({name})"


_STATUS_EXCEPTIONS = {
    Status.INVALID_SLAVE_ID: InvalidSlaveId,
    Status.INVALID_FUNCTION: InvalidFunction,
    Status.RESPONSE_TIMED_OUT: ServerNoResponse,
    Status.INVALID_CRC: FailedCRCValidation}


def raise_for_status(status: int) -> None:
    """
    Raises the InvalidResponse matching a failed transaction status

    :param status: value returned by ModbusMaster.execute() or one of its wrappers
    """
    if status == Status.SUCCESS:
        return None
    raise _STATUS_EXCEPTIONS.get(status, ModbusExceptionResponse)(status)
