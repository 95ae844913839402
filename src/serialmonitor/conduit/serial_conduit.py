"""
Implements the transport over serial ports using pyserial.
"""

import logging

import serial
from serial.tools import list_ports

from serialmonitor.conduit.base import Conduit, Transport
from serialmonitor.protocol.loop import AsyncLoop

logger = logging.getLogger(__name__)


class SerialConduit(Conduit):
    """
    A conduit that provides comms via a serial port.
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser
        self.reader = None      # the loop pumping received bytes, while open

    @property
    def target(self):
        return self.ser

    @property
    def port(self):
        return self.ser.port

    @property
    def baud_rate(self):
        return self.ser.baudrate

    @property
    def input(self):
        return self.ser

    @property
    def output(self):
        return self.ser

    @property
    def open(self) -> bool:
        return self.ser.is_open

    def close(self):
        self.ser.close()

    def __repr__(self):
        return 'SerialConduit(%s@%s)' % (self.port, self.baud_rate)


def serial_port_info():
    """
    :return: a tuple of pyserial ListPortInfo for the ports present on the system
    """
    return tuple(list_ports.comports())


def serial_ports():
    """
    Returns a generator for all available serial port device names, in name order.
    """
    for port in sorted(serial_port_info(), key=lambda p: p.device):
        yield port.device


class SerialTransport(Transport):
    """
    The transport for local serial ports. Port identifiers are device names such as COM3 or /dev/ttyUSB0,
    or any pyserial URL (e.g. loop://).

    Each open port has a background reader that fires `received` with (conduit, data) whenever bytes arrive.

    :param read_timeout: how long the reader blocks waiting for bytes, which bounds how long closing waits
        for the reader to stop.
    :param write_timeout: how long a write may block before failing.
    """

    def __init__(self, read_timeout=0.05, write_timeout=1.0):
        super().__init__()
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    def list_ports(self):
        return tuple(serial_ports())

    def _create_serial(self, port, baud_rate):
        return serial.serial_for_url(port, baudrate=baud_rate,
                                     timeout=self.read_timeout, write_timeout=self.write_timeout)

    def open(self, port, baud_rate) -> SerialConduit:
        if not port:
            raise ValueError("no port selected")
        conduit = SerialConduit(self._create_serial(port, baud_rate))
        conduit.reader = AsyncLoop(self._read, (conduit,), name='serial-reader-%s' % port)
        conduit.reader.start()
        logger.info("opened serial port %s at %s baud", port, baud_rate)
        return conduit

    def _read(self, conduit: SerialConduit):
        """ reads whatever is waiting, or blocks for up to the read timeout for the next byte. """
        ser = conduit.ser
        if not ser.is_open:
            self._stop_reading(conduit)
            return
        try:
            data = ser.read(ser.in_waiting or 1)
        except serial.SerialException as e:
            # the device went away; the session finds out on its next write or close
            logger.error("reading serial port %s failed: %s", conduit.port, e)
            self._stop_reading(conduit)
            return
        if data:
            self.received.fire(conduit, data)

    @staticmethod
    def _stop_reading(conduit: SerialConduit):
        reader = conduit.reader
        if reader is not None:
            reader.stop()

    def close(self, handle: SerialConduit):
        self._stop_reading(handle)
        handle.close()
        logger.info("closed serial port %s", handle.port)

    def write(self, handle: SerialConduit, data):
        handle.output.write(data)
        handle.output.flush()
