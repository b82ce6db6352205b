"""Assemble open way fragments into closed rings via shared node ids."""

from collections import defaultdict

from .osm_elements import resolve_way_coords


def _count(stats, key):
    if stats is not None:
        stats[key] = stats.get(key, 0) + 1


def chain_fragments(fragments, allow_reverse=True, extend_head=False):
    """
    Chain node-id sequences end to end by exact shared endpoint ids.

    Fragments are consumed by index from an endpoint lookup rather than by
    repeatedly splicing a list, so large relations stay near-linear.

    Args:
        fragments: List of node-id lists
        allow_reverse: Whether a fragment may be appended back to front
        extend_head: Also grow the chain backwards from its head (only
            forward-oriented fragments are prepended)

    Returns:
        list: Node-id chains; a chain is closed when chain[0] == chain[-1]
    """
    fragments = [list(f) for f in fragments if len(f) >= 2]
    heads = defaultdict(list)
    tails = defaultdict(list)
    for index, fragment in enumerate(fragments):
        heads[fragment[0]].append(index)
        tails[fragment[-1]].append(index)

    used = [False] * len(fragments)

    def take(candidates):
        for index in candidates:
            if not used[index]:
                used[index] = True
                return index
        return None

    chains = []
    for start in range(len(fragments)):
        if used[start]:
            continue
        used[start] = True
        chain = list(fragments[start])

        while chain[0] != chain[-1]:
            tail = chain[-1]
            index = take(heads[tail])
            if index is not None:
                chain.extend(fragments[index][1:])
                continue
            if allow_reverse:
                index = take(tails[tail])
                if index is not None:
                    chain.extend(list(reversed(fragments[index]))[1:])
                    continue
            break

        if extend_head:
            while chain[0] != chain[-1]:
                index = take(tails[chain[0]])
                if index is None:
                    break
                chain = fragments[index][:-1] + chain

        chains.append(chain)

    return chains


def assemble_rings(member_ways, nodes, stats=None):
    """
    Build closed coordinate rings from the member ways of one role group.

    Args:
        member_ways: List of way dicts (each with a 'nodes' id list)
        nodes: Node lookup table, id -> (lat, lon)
        stats: Optional dict of drop counters to increment

    Returns:
        list: Closed rings as lists of (lat, lon), first point repeated last
    """
    rings = []
    chains = chain_fragments([way.get('nodes', []) for way in member_ways])

    for chain in chains:
        if chain[0] != chain[-1]:
            _count(stats, 'not_closed')
            continue
        coords = resolve_way_coords(chain, nodes)
        if coords is None:
            _count(stats, 'incomplete_reference')
            continue
        if len(coords) < 3:
            _count(stats, 'degenerate')
            continue
        rings.append(coords)

    return rings
