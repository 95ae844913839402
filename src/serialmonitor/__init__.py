"""


Serial Monitor

- Transport: opens, closes, reads and writes ports. The serial transport runs a background reader
  per open port and fires the bytes it reads on `received`.
- TransportSession: the lifecycle of one connection (closed, opening, open, closing) and the errors
  reported to the user. Received bytes are handed to a framer.
- Framer: cuts the received byte stream into frames.
    QuiescenceFramer - a frame ends after a period with no bytes (100ms by default)
    DelimiterFramer - a frame ends after each delimiter
- PortDirectory: enumerates the ports on each refresh and keeps the user's selection when it is still present.
  Publishes ResourceAvailableEvent and ResourceUnavailableEvent as ports come and go.
- LogFormatter, MessageLog: render each frame or sent text as one log line, with CR and LF shown as
  [0x0D] and [0x0A], and keep the lines in order.
- Monitor: the facade a user interface drives. console.py is a minimal front end.


## Threading

Bytes arrive on the reader thread and are queued in the framer. Only the thread calling tick()
(the monitor's ticker, or the user interface's own timer) touches the accumulated bytes, so
frames are never split by a concurrent append.

Log and session events are fired on the thread that caused them. User interfaces that must update
on their own thread listen to Monitor.notifications and call Monitor.publish() from that thread.


## Configuration

Settings are read from serialmonitor.default.cfg in the config package, then serialmonitor.<os>.cfg,
~/serialmonitor.cfg and finally serialmonitor.cfg in the given directory, and validated against
serialmonitor.schema.cfg.
"""
