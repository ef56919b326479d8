"""Label and annotation merging for generated objects."""

from . import crd


def merge_labels_or_annotations(base, additional):
    """Merge two maps into a new one; keys in ``additional`` win.

    Either map may be None. Returns None only when both are empty, so that
    objects without annotations keep the field unset.
    """
    merged = dict(base or {})
    merged.update(additional or {})
    return merged or None


def normalize(base_labels, base_annotations, override_labels, override_annotations):
    """Layer user overrides on top of internal labels and annotations.

    ``base_labels`` are internal to the operator: overrides may add keys and
    replace other keys, but whatever ``base_labels`` sets always survives.
    Annotations follow the same layering without reserved keys.

    Returns:
        Tuple of (labels, annotations)
    """
    labels = merge_labels_or_annotations(base_labels, override_labels) or {}
    labels.update(base_labels or {})
    annotations = merge_labels_or_annotations(base_annotations, override_annotations)
    return labels, annotations


def object_labels(cloud, extra=None):
    """Labels for an object owned by ``cloud`` before kind-specific options.

    Layers, lowest first: the SolrCloud's own metadata labels, then
    ``extra`` kind markers (e.g. the service type). The identity labels
    are added by :func:`labels_and_annotations`.
    """
    labels = dict(cloud.metadata.labels)
    labels.update(extra or {})
    return labels


def labels_and_annotations(cloud, options, extra_labels=None, base_annotations=None):
    """Labels and annotations for one generated object kind.

    Args:
        cloud: The owning SolrCloud
        options: The kind-specific custom kube options (labels/annotations)
        extra_labels: Internal kind markers that user labels may override
        base_annotations: Computed annotations that user annotations may override

    Returns:
        Tuple of (labels, annotations)
    """
    user_labels = object_labels(cloud, extra_labels)
    user_labels.update(options.labels if options is not None else {})
    return normalize(
        cloud.shared_labels(),
        base_annotations,
        user_labels,
        options.annotations if options is not None else None,
    )
