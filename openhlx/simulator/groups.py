"""
Groups controller (server side).

Group expansion: a volume, mute or source change addressed to a group is
applied to each member zone in ascending zone order through the zones
controller, so every member produces its own zone notification, and is
then echoed once at group level.

- Volume-locked members are skipped by volume changes only.
- A group volume step moves the unlocked members that can move; the
  group level becomes the rounded average of the zones that moved.
- Membership changes never touch zone state.
"""

from __future__ import annotations

import logging
import re

from openhlx.model import GroupModel, ModelRepository, Status, ZoneModel
from openhlx.model.values import VOLUME_MAX, VOLUME_MIN, validate_range
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import CommandManager, RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import ChangeTracker, Controller, identifier
from openhlx.simulator.zones import ZonesController

logger = logging.getLogger(__name__)


class GroupsController(Controller):
    def __init__(
        self,
        repository: ModelRepository,
        command_manager: CommandManager,
        changes: ChangeTracker,
        zones: ZonesController,
    ) -> None:
        super().__init__(repository, command_manager, changes)
        self.zones = zones

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.GROUP_QUERY, self._handle_query),
            (commands.GROUP_VOLUME, self._handle_volume),
            (commands.GROUP_VOLUME_UP, self._handle_volume_up),
            (commands.GROUP_VOLUME_DOWN, self._handle_volume_down),
            (commands.GROUP_MUTE, self._handle_mute),
            (commands.GROUP_TOGGLE_MUTE, self._handle_toggle_mute),
            (commands.GROUP_SOURCE, self._handle_source),
            (commands.GROUP_NAME, self._handle_name),
            (commands.GROUP_ADD_ZONE, self._handle_add_zone),
            (commands.GROUP_REMOVE_ZONE, self._handle_remove_zone),
            (commands.GROUP_CLEAR_ALL, self._handle_clear_all),
        ]

    def group_lines(self, group: GroupModel) -> list[str]:
        """Name, members, volume, mute and source(s) of a group."""
        g = group.identifier
        lines: list[str] = []
        if group.name is not None:
            lines.append(commands.group_name(g, group.name))
        lines.extend(commands.group_add_zone(g, zone) for zone in group.zones)
        if group.volume.level is not None:
            lines.append(commands.group_volume(g, group.volume.level))
        if group.volume.muted is not None:
            lines.append(commands.group_mute(g, group.volume.muted))
        lines.extend(commands.group_source(g, source) for source in group.sources)
        return lines

    def configuration_lines(self) -> list[str]:
        lines: list[str] = []
        for group in self.repository.groups:
            lines.extend(self.group_lines(group))
        return lines

    def _group(self, match: re.Match[str]) -> GroupModel | None:
        return self.repository.groups.get(identifier(match))

    def _members(self, group: GroupModel) -> list[ZoneModel]:
        members: list[ZoneModel] = []
        for zone_id in group.zones:
            zone = self.repository.zones.get(zone_id)
            if zone is not None:
                members.append(zone)
        return members

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        return await self.reply_query(connection, self.group_lines(group), match)

    async def _handle_volume(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        level = int(match.group(2))
        status = validate_range(level, VOLUME_MIN, VOLUME_MAX)
        if status is not Status.SUCCESS:
            return status

        reached = False
        for zone in self._members(group):
            if zone.volume.locked:
                logger.debug("Group %d: zone %d is volume locked", group.identifier, zone.identifier)
                continue
            if (await self.zones.set_volume(zone, level)).is_ok:
                reached = True

        if reached:
            status = group.volume.set_level(level)
        elif group.volume.level is None:
            return Status.NOT_INITIALIZED
        else:
            status = Status.ALREADY_SET

        return await self.commit(
            status, lambda: commands.group_volume(group.identifier, group.volume.level or 0)
        )

    async def _adjust_volume(self, match: re.Match[str], delta: int) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE

        moved: list[int] = []
        for zone in self._members(group):
            if zone.volume.locked:
                continue
            # Members already at a limit stay put; the rest still move
            if await self.zones.adjust_volume(zone, delta) is Status.SUCCESS and zone.volume.level is not None:
                moved.append(zone.volume.level)

        if moved:
            status = group.volume.set_level(round(sum(moved) / len(moved)))
        elif group.volume.level is None:
            return Status.NOT_INITIALIZED
        else:
            status = Status.ALREADY_SET

        return await self.commit(
            status, lambda: commands.group_volume(group.identifier, group.volume.level or 0)
        )

    async def _handle_volume_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self._adjust_volume(match, 1)

    async def _handle_volume_down(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self._adjust_volume(match, -1)

    async def _apply_mute(self, group: GroupModel, muted: bool, status: Status) -> Status:
        for zone in self._members(group):
            await self.zones.set_mute(zone, muted)
        return await self.commit(status, lambda: commands.group_mute(group.identifier, muted))

    async def _handle_mute(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self.repository.groups.get(identifier(match, 2))
        if group is None:
            return Status.OUT_OF_RANGE
        muted = commands.mute_from_wire(match.group(1))
        return await self._apply_mute(group, muted, group.volume.set_mute(muted))

    async def _handle_toggle_mute(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        status = group.volume.toggle_mute()
        if not status.is_ok:
            return status
        return await self._apply_mute(group, bool(group.volume.muted), status)

    async def _handle_source(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        source = identifier(match, 2)
        status = self.repository.sources.validate(source)
        if status is not Status.SUCCESS:
            return status

        for zone in self._members(group):
            await self.zones.set_source(zone, source)

        status = group.set_source(source)
        return await self.commit(status, lambda: commands.group_source(group.identifier, source))

    async def _handle_name(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        status = group.set_name(match.group(2))
        return await self.commit(status, lambda: commands.group_name(group.identifier, group.name or ""))

    async def _handle_add_zone(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        zone = identifier(match, 2)
        status = group.add_zone(zone)
        return await self.commit(status, lambda: commands.group_add_zone(group.identifier, zone))

    async def _handle_remove_zone(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        group = self._group(match)
        if group is None:
            return Status.OUT_OF_RANGE
        zone = identifier(match, 2)
        status = group.remove_zone(zone)
        if status is Status.NOT_FOUND:
            # Removing a non-member is idempotent on the wire
            status = Status.ALREADY_SET
        return await self.commit(status, lambda: commands.group_remove_zone(group.identifier, zone))

    async def _handle_clear_all(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        changed = False
        for group in self.repository.groups:
            for zone in group.zones:
                await self.command_manager.broadcast(commands.group_remove_zone(group.identifier, zone))
            if group.clear_zones() is Status.SUCCESS:
                changed = True

        return await self.commit(
            Status.SUCCESS if changed else Status.ALREADY_SET,
            commands.group_clear_all,
        )
