"""Lookup tables over a flat list of Overpass JSON elements."""


def index_elements(elements):
    """
    Split raw Overpass elements into lookup tables for one processing pass.

    Args:
        elements: List of element dicts (`type` is 'node', 'way' or 'relation')

    Returns:
        tuple: (nodes, ways, relations) where nodes maps id -> (lat, lon),
        ways maps id -> way dict and relations is a list in input order
    """
    nodes = {}
    ways = {}
    relations = []

    for element in elements or []:
        elem_type = element.get('type')
        if elem_type == 'node':
            lat = element.get('lat')
            lon = element.get('lon')
            if lat is None or lon is None:
                continue
            nodes[element.get('id')] = (float(lat), float(lon))
        elif elem_type == 'way':
            ways[element.get('id')] = element
        elif elem_type == 'relation':
            relations.append(element)

    return nodes, ways, relations


def resolve_way_coords(node_ids, nodes):
    """
    Resolve node identifiers to (lat, lon) pairs.

    Returns None if any node is missing from the lookup table; an
    incomplete way is never silently truncated.
    """
    coords = []
    for node_id in node_ids:
        coord = nodes.get(node_id)
        if coord is None:
            return None
        coords.append(coord)
    return coords


def is_closed_way(node_ids):
    """A way is a closed ring when its first and last node ids coincide."""
    return len(node_ids) > 2 and node_ids[0] == node_ids[-1]


def relation_member_ways(relation, ways, role):
    """Return the member way dicts of a relation that carry `role`."""
    members = []
    for member in relation.get('members', []):
        if member.get('type') != 'way' or member.get('role') != role:
            continue
        way = ways.get(member.get('ref'))
        if way is not None:
            members.append(way)
    return members
