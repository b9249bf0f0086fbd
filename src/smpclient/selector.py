import logging
from typing import List
from typing import Optional

from smpclient.datamodel import AnyProcessIdentifier
from smpclient.datamodel import EndpointInfo
from smpclient.datamodel import Identifier
from smpclient.datamodel import NO_PROCESS
from smpclient.datamodel import ProcessGroup
from smpclient.datamodel import ServiceMetadata
from smpclient.exception import AmbiguousMetadataError

logger = logging.getLogger(__name__)


class EndpointSelector(object):
    """
    Picks the process group, and from that the endpoints, that apply to a process, role
    and transport profile.
    """

    def candidates(self, metadata: ServiceMetadata, process_id: AnyProcessIdentifier,
                   role: Optional[Identifier] = None) -> list:
        """
        :return: list of (group, matching process infos) tuples
        """
        res = []
        for group in metadata.process_groups:
            if group.is_catch_all:
                res.append((group, ()))
                continue
            _matching = group.matching_processes(process_id, role)
            if _matching:
                res.append((group, _matching))
        return res

    def select_group(self, metadata: ServiceMetadata,
                     process_id: Optional[AnyProcessIdentifier] = None,
                     role: Optional[Identifier] = None) -> Optional[ProcessGroup]:
        """
        Find the one process group that applies.

        :return: A ProcessGroup instance or None if none applies
        """
        if process_id is None:
            process_id = NO_PROCESS

        candidates = self.candidates(metadata, process_id, role)
        if not candidates:
            logger.debug(f"No process group for {process_id} (role: {role})")
            return None

        # More specific matches win over generic ones
        if len(candidates) > 1 and role is not None:
            candidates = [c for c in candidates if any(p.roles for p in c[1])]
        if len(candidates) > 1:
            candidates = [c for c in candidates if not c[0].is_catch_all]

        if len(candidates) != 1:
            logger.error(f"{len(candidates)} process groups apply to {process_id} (role: {role})")
            raise AmbiguousMetadataError(
                f"Can not pick one process group for {process_id} in metadata of "
                f"{metadata.participant_id}")

        return candidates[0][0]

    def select(self, metadata: ServiceMetadata,
               process_id: Optional[AnyProcessIdentifier] = None,
               role: Optional[Identifier] = None,
               transport_profile: Optional[str] = None) -> List[EndpointInfo]:
        group = self.select_group(metadata, process_id, role)
        if group is None:
            return []
        return self.filter_endpoints(group, transport_profile)

    def filter_endpoints(self, group: ProcessGroup,
                         transport_profile: Optional[str] = None) -> List[EndpointInfo]:
        if transport_profile is None:
            return list(group.endpoints)
        return [ep for ep in group.endpoints if ep.transport_profile == transport_profile]
