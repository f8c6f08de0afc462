"""Read NanoAOD-style ROOT trees into per-event ``Event`` objects with uproot.

A product label is either an exact branch name (value maps such as
``Electron_vetoId``, scalars such as ``fixedGridRhoFastjetAll``) or a
collection prefix: every ``<label>_*`` branch is zipped into one record array
(``Electron`` -> ``Electron_pt``, ``Electron_eta``, ...).
"""

import logging

import awkward as ak
import uproot

from egfill.event import Event, tag_cluster_isolation

logger = logging.getLogger(__name__)

EVENT_ID_BRANCHES = ("run", "luminosityBlock", "event")

# Present in simulation only.
GEN_WEIGHT_BRANCH = "genWeight"


def _branch_filter(tree, labels):
    """Branch names needed to build ``labels`` (plus event ids)."""
    keys = set(tree.keys())
    wanted = [b for b in EVENT_ID_BRANCHES if b in keys]
    missing = []
    for label in labels:
        matched = [k for k in keys if k == label or k.startswith(f"{label}_")]
        if not matched:
            missing.append(label)
        wanted.extend(m for m in matched if m not in wanted)
    if missing:
        logger.warning("Products not found in tree '%s': %s", tree.name, ", ".join(missing))
    return wanted


def build_products(arrays, labels):
    """Turn a chunk of branch arrays into ``{label: array}``."""
    fields = set(arrays.fields)
    products = {}
    for label in labels:
        if label in fields:
            products[label] = arrays[label]
            continue
        prefix = f"{label}_"
        members = {f[len(prefix):]: arrays[f] for f in arrays.fields if f.startswith(prefix)}
        if not members:
            continue
        collection = ak.zip(members, depth_limit=2)
        if "superClusterIdx" in members:
            collection = tag_cluster_isolation(collection)
        products[label] = collection
    return products


def _is_real_data(tree):
    return GEN_WEIGHT_BRANCH not in tree.keys()


def is_real_data_file(path, tree_name="Events"):
    """True if the input tree has no ``genWeight`` branch (collision data)."""
    with uproot.open(path) as f:
        return _is_real_data(f[tree_name])


def iter_events(path, labels, tree_name="Events", step_size=1000, entry_stop=None, is_real_data=None):
    """Yield one ``Event`` per tree entry, reading only the requested products.

    Real data is detected from the absence of ``genWeight`` unless
    ``is_real_data`` is given.
    """
    with uproot.open(path) as f:
        tree = f[tree_name]
        if is_real_data is None:
            is_real_data = _is_real_data(tree)
        branches = _branch_filter(tree, labels)
        logger.info(
            "Reading %s:%s (%s, %d branches)", path, tree_name,
            "data" if is_real_data else "mc", len(branches),
        )

        for arrays in tree.iterate(branches, step_size=step_size, entry_stop=entry_stop, library="ak"):
            products = build_products(arrays, labels)
            fields = set(arrays.fields)
            for i in range(len(arrays)):
                ids = {
                    b: int(arrays[b][i]) if b in fields else 0
                    for b in EVENT_ID_BRANCHES
                }
                yield Event(
                    {label: product[i:i + 1] for label, product in products.items()},
                    is_real_data=is_real_data,
                    run=ids["run"],
                    lumi=ids["luminosityBlock"],
                    event=ids["event"],
                )
