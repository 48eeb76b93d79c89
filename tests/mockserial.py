class MockSerial:
    """Class to mock a serial connection for testing communication without an actual device"""

    _port: str
    _baudrate: int
    _message: bytes

    def __init__(self, port, baudrate):
        self._port = port
        self._baudrate = baudrate
        self._message = b''
        self._responses = []
        self._rts = False
        self.written = []
        self.events = []
        self.is_open = True

    def open(self):
        self.is_open = True

    def close(self):
        self.is_open = False

    def read(self, size=1):
        chunk = self._message[:size]
        self.set_message(self._message[size:])
        return chunk

    def set_message(self, byte_msg):
        self._message = bytes(byte_msg)

    def queue_response(self, byte_msg):
        """Response served once the next request has been written"""
        self._responses.append(bytes(byte_msg))

    def write(self, byte_msg):
        self.written.append(bytes(byte_msg))
        self.events.append("write")
        if self._responses:
            self.set_message(self._message + self._responses.pop(0))
        return len(byte_msg)

    def flush(self):
        self.events.append("flush")

    @property
    def in_waiting(self):
        return len(self._message)

    @property
    def rts(self):
        return self._rts

    @rts.setter
    def rts(self, value):
        self._rts = value
        self.events.append(("rts", value))

    @property
    def baudrate(self):
        return self._baudrate


class FakeClock:
    """Millisecond clock advancing by step on every reading"""

    def __init__(self, start=0, step=1):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now & 0xFFFFFFFF
        self.now += self.step
        return value
