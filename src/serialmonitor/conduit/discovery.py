"""
    Discovery of the ports a monitor can connect to.
    Ports come and go (USB adapters are plugged in and removed), so the available ports are re-enumerated
    each time they are needed, and events are published as ports become available or unavailable.
"""

import logging

from serialmonitor.conduit.base import Transport
from serialmonitor.support.events import EventSource
from serialmonitor.support.mixins import ValueObject

logger = logging.getLogger(__name__)

default_baud_rates = (9600, 19200, 38400, 57600, 115200)


class ResourceEvent(ValueObject):
    """ Notification about a resource. """
    def __init__(self, source, key, resource):
        """
        :param source   The ResourceDiscovery that posted this event
        :param key An identifier for the resource that is available.
        :param resource The resource itself, which may have instance-specific details beyond what is available in
            key.
        """
        self.source = source
        self.key = key
        self.resource = resource


class ResourceAvailableEvent(ResourceEvent):
    """ Signifies that a resource is available. """


class ResourceUnavailableEvent(ResourceEvent):
    """ Signifies that a resource has become unavailable. """


class PolledResourceDiscovery:
    """
    Determines updates to the available resources in response to calling
    update(), and fires events for the resources added and removed.
    """

    def __init__(self):
        self.listeners = EventSource()
        self.previous = {}      # the previous known resources

    def _is_allowed(self, key, device):
        """
        Template method to allow subclasses to pre-filter the set of
        recognized resources for any that should be excluded from
        discovery.
        """
        return True

    def attached(self, key, device):
        """template method for subclasses to process a new resource"""
        logger.info("available port: %s", key)

    def detached(self, key, device):
        """template method for subclasses to process a removed resource"""
        logger.info("unavailable port: %s", key)

    def _changed_events(self, available: dict) -> list:
        """
        Computes which resources have been added, removed or changed.
        :param available: dictionary of resource key to resource info.
        :return: returns a list of events to send
        """
        events = []
        for key, previous in self.previous.items():
            current = available.get(key)
            if current is None or current != previous:
                self.detached(key, previous)
                events.append(ResourceUnavailableEvent(self, key, previous))
        for key, current in available.items():
            previous = self.previous.get(key)
            if previous is None or current != previous:
                self.attached(key, current)
                events.append(ResourceAvailableEvent(self, key, current))
        return events

    def _fetch_available(self):
        """ Template method for subclasses to determine the current
            resources available.
        :return: an ordered dictionary of resource key to resource instance.
        """
        return {}

    def _filter_available(self, available: dict):
        return {k: v for k, v in available.items() if self._is_allowed(k, v)}

    def update(self):
        """ fetches the available resources, fires events for any changes since the last update
        :return: the available resources
        """
        available = self._filter_available(self._fetch_available())
        events = self._changed_events(available)
        self.previous = available
        self.listeners.fire_all(events)
        return available


class PortDirectory(PolledResourceDiscovery):
    """
    The ports and baud rates offered to the user.

    The port list is enumerated afresh on every refresh since ports can appear and disappear
    between interactions. A user's selection survives a refresh for as long as the port is present.

    :param transport: enumerates the ports
    :param baud_rates: the fixed baud rates offered, in display order
    :param default_baud_rate: the rate selected when none is, defaults to the first rate
    """

    def __init__(self, transport: Transport, baud_rates=default_baud_rates, default_baud_rate=None):
        super().__init__()
        if not baud_rates:
            raise ValueError("at least one baud rate is required")
        self.transport = transport
        self.baud_rates = tuple(baud_rates)
        self.default_baud_rate = default_baud_rate if default_baud_rate in self.baud_rates else self.baud_rates[0]

    def _fetch_available(self):
        return {port: port for port in self.transport.list_ports()}

    def refresh(self, current_selection=None):
        """
        Enumerates the ports.
        :param current_selection: the port presently selected, if any
        :return: a tuple of (ports, selection). The selection is the current selection when that
            is still available, otherwise the first port, or None when there are no ports.
        """
        ports = tuple(self.update())
        if current_selection in ports:
            selection = current_selection
        else:
            selection = ports[0] if ports else None
        return ports, selection

    def select_baud_rate(self, current=None):
        """ Keeps the current baud rate if it is one of those offered, otherwise selects the default. """
        return current if current in self.baud_rates else self.default_baud_rate
