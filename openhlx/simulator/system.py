"""Front panel, infrared and network controllers (server side)."""

from __future__ import annotations

import re

from openhlx.model import Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import Controller, flag, identifier


class FrontPanelController(Controller):
    """Display brightness (0-3) and the front panel lock."""

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.FRONT_PANEL_BRIGHTNESS, self._handle_brightness),
            (commands.FRONT_PANEL_LOCKED, self._handle_locked),
            (commands.FRONT_PANEL_QUERY_BRIGHTNESS, self._handle_query_brightness),
            (commands.FRONT_PANEL_QUERY, self._handle_query),
        ]

    def _brightness_lines(self) -> list[str]:
        brightness = self.repository.front_panel.brightness
        return [] if brightness is None else [commands.front_panel_brightness(brightness)]

    def configuration_lines(self) -> list[str]:
        lines = self._brightness_lines()
        locked = self.repository.front_panel.locked
        if locked is not None:
            lines.append(commands.front_panel_locked(locked))
        return lines

    async def _handle_brightness(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        brightness = identifier(match)
        status = self.repository.front_panel.set_brightness(brightness)
        return await self.commit(status, lambda: commands.front_panel_brightness(brightness))

    async def _handle_locked(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        locked = flag(match)
        status = self.repository.front_panel.set_locked(locked)
        return await self.commit(status, lambda: commands.front_panel_locked(locked))

    async def _handle_query_brightness(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.reply_query(connection, self._brightness_lines(), match)

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.reply_query(connection, self.configuration_lines(), match)


class InfraredController(Controller):
    """
    Infrared remote enable/disable.

    ``QIRL`` is answered with the bare ``IRL<d>`` state line and no echo of
    the query, unlike every other compound query.
    """

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.INFRARED_DISABLED, self._handle_disabled),
            (commands.INFRARED_QUERY, self._handle_query),
        ]

    def configuration_lines(self) -> list[str]:
        disabled = self.repository.infrared.disabled
        return [] if disabled is None else [commands.infrared_disabled(disabled)]

    async def _handle_disabled(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        disabled = flag(match)
        status = self.repository.infrared.set_disabled(disabled)
        return await self.commit(status, lambda: commands.infrared_disabled(disabled))

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        if self.repository.infrared.disabled is None:
            return Status.NOT_INITIALIZED
        await self.reply(connection, self.configuration_lines())
        return Status.SUCCESS


class NetworkController(Controller):
    """Read-only view of the network interface settings."""

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [(commands.NETWORK_QUERY, self._handle_query)]

    def configuration_lines(self) -> list[str]:
        network = self.repository.network
        lines: list[str] = []
        if network.dhcp_enabled is not None:
            lines.append(commands.network_dhcp(network.dhcp_enabled))
        if network.mac_address is not None:
            lines.append(commands.network_mac(network.mac_address))
        if network.host_address is not None:
            lines.append(commands.network_host_address(network.host_address))
        if network.netmask is not None:
            lines.append(commands.network_netmask(network.netmask))
        if network.gateway_address is not None:
            lines.append(commands.network_gateway(network.gateway_address))
        if network.sddp_enabled is not None:
            lines.append(commands.network_sddp(network.sddp_enabled))
        return lines

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.reply_query(connection, self.configuration_lines(), match)
