from typing import NamedTuple

import pandas as pd

from .results import int_safe
from .util import timestamped_echo


SCAN_GROUP_COLUMNS = ['Scan_Group_ID', 'Charge', 'Scan']


class ScanGroupRecord(NamedTuple):
    scan_group_id: int
    charge: int
    scan: int


class ScanGroupAssembler:
    """
    Expands merged-spectrum results (Scan like 3010/3011/3012) into one result per scan
    and tracks which scans were searched together.

    A merge event is the combination of charge and scan list. A group ID is only
    allocated once a second, different event reuses a (charge, scan) pair of an earlier
    event; both events then share that ID.
    """

    def __init__(self, errors=None):
        self.errors = errors
        self._events = []
        self._event_group_ids = []
        self._event_lookup = {}
        self._key_events = {}
        self._group_events = {}
        self._next_group_id = 1

    def expand(self, result):
        if "/" not in result.scan:
            return [result]

        scans = result.scan.split("/")
        spec_indices = result.spec_index.split("/")
        frag_methods = result.frag_method.split("/")

        if len(spec_indices) != len(scans) or len(frag_methods) != len(scans):
            message = "Scan list %s has %d spec index and %d frag method entries" % (result.scan, len(spec_indices), len(frag_methods))
            if self.errors is not None:
                self.errors.record_warning(message)
            else:
                timestamped_echo("Warning: %s" % message)

        expanded = []
        for index, scan in enumerate(scans):
            expanded.append(result.copy(scan=scan,
                                        scan_num=int_safe(scan, 0),
                                        spec_index=spec_indices[index] if index < len(spec_indices) else "",
                                        frag_method=frag_methods[index] if index < len(frag_methods) else ""))

        self.record_group_membership(result.charge_num, [r.scan_num for r in expanded])

        return expanded

    def record_group_membership(self, charge, scans):
        event = (charge, tuple(scans))
        if event in self._event_lookup:
            return

        event_index = len(self._events)
        self._events.append(event)
        self._event_group_ids.append(None)
        self._event_lookup[event] = event_index

        linked_events = set()
        for scan in scans:
            key = (charge, scan)
            linked_events.update(self._key_events.get(key, ()))
            self._key_events.setdefault(key, []).append(event_index)
        linked_events.discard(event_index)

        if len(linked_events) == 0:
            return

        existing_ids = sorted({self._event_group_ids[i] for i in linked_events if self._event_group_ids[i] is not None})
        if existing_ids:
            group_id = existing_ids[0]
        else:
            group_id = self._next_group_id
            self._next_group_id += 1

        # ungrouped linked events join the group; groups bridged by this event collapse onto group_id
        members = [event_index] + [i for i in linked_events if self._event_group_ids[i] is None]
        for other_id in existing_ids[1:]:
            members.extend(self._group_events.pop(other_id))

        for i in members:
            self._event_group_ids[i] = group_id
        self._group_events.setdefault(group_id, []).extend(members)

    def records(self):
        records = []
        seen = set()
        for (charge, scans), group_id in zip(self._events, self._event_group_ids):
            if group_id is None:
                continue
            for scan in scans:
                key = (group_id, charge, scan)
                if key not in seen:
                    seen.add(key)
                    records.append(ScanGroupRecord(group_id, charge, scan))
        return records

    def to_dataframe(self):
        return pd.DataFrame(self.records(), columns=SCAN_GROUP_COLUMNS)

    def write(self, scan_group_file):
        """Write the scan group file; nothing is written when no group was allocated."""
        records = self.to_dataframe()
        if records.shape[0] == 0:
            return False

        records.to_csv(scan_group_file, sep="\t", index=False)
        timestamped_echo("Info: Stored %d scan group entries in %s." % (records.shape[0], scan_group_file))
        return True
