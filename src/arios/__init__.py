"""

ARIOS connections

A mobile client finds a remote device by name, keeps one stream connection open to it and sends
small KEY=value updates that mirror the state of a simple remote UI.

- Device: the resolved peer - name, address, port, the service values it advertises and whether
  its application is running. Replaced as a whole on each discovery, reset on disconnect.
- Service kinds: the closed set of UI elements a peer can offer (toggle, checkbox, colorpicker,
  textfield) and how their values are written as text.
- Resource discovery - browses mDNS/DNS-SD for advertisements of a service type and resolves the
  one whose instance name matches the requested name. ServiceResolver.
- Conduit: abstraction of a bi-directional byte channel.
- Connector: knows an endpoint and opens a conduit to it. Readiness is reported through a future.
- SessionManager - owns the current Device and the five connection flags, runs discovery,
  connects, sends updates and watches the connection for the peer closing it. The visible Status
  is derived from the flags every time one of them changes.
- ServiceProvider - the peer side. Advertises the service with its values as TXT records and
  applies the updates it receives.


## Threading

Discovery and connection setup run on a small worker pool owned by the session. Each connection
has its own background thread that blocks on the socket. The zeroconf browser runs on zeroconf's
own threads and only queues what it sees, so that resolution happens on the discovery worker.

All state changes go through the session lock. Event handlers are called on whichever thread made
the change, so they must return quickly.

"""


class AriosError(Exception):
    """ Base class for the errors raised by this package. """
