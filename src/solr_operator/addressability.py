"""Host names, ports and exposure rules for a SolrCloud."""

import logging

from kubernetes import client

from . import crd

logger = logging.getLogger(__name__)


def external_options(cloud):
    return cloud.spec.solr_addressability.external


def uses_ingress(cloud) -> bool:
    ext = external_options(cloud)
    return ext is not None and ext.method == "Ingress"


def uses_external_dns(cloud) -> bool:
    ext = external_options(cloud)
    return ext is not None and ext.method == "ExternalDNS"


def uses_external_address(cloud) -> bool:
    """Whether nodes advertise their external host instead of the internal one.

    Hidden nodes have no external address to advertise, and neither do nodes
    without any external domain.
    """
    ext = external_options(cloud)
    return (
        ext is not None
        and ext.use_external_address
        and not ext.hide_nodes
        and bool(ext.all_domains())
    )


def needs_node_services(cloud) -> bool:
    ext = external_options(cloud)
    return uses_ingress(cloud) and not ext.hide_nodes


def node_port(cloud) -> int:
    """Port each Solr node advertises in live_nodes."""
    addressability = cloud.spec.solr_addressability
    if not uses_external_address(cloud):
        return addressability.pod_port

    ext = addressability.external
    if ext.node_port_override > 0:
        return ext.node_port_override
    if ext.method == "Ingress":
        if cloud.spec.solr_tls is not None:
            return crd.DEFAULT_INGRESS_TLS_NODE_PORT
        return crd.DEFAULT_INGRESS_NODE_PORT
    return addressability.pod_port


def external_dns_domain(cloud, domain_name):
    return f"{cloud.namespace}.{domain_name}"


def external_common_host(cloud, domain_name):
    if uses_external_dns(cloud):
        return f"{cloud.common_service_name()}.{external_dns_domain(cloud, domain_name)}"
    return f"{cloud.namespace}-{cloud.stateful_set_name()}.{domain_name}"


def external_node_host(cloud, node_name, domain_name):
    if uses_external_dns(cloud):
        return f"{node_name}.{external_dns_domain(cloud, domain_name)}"
    return f"{cloud.namespace}-{node_name}.{domain_name}"


def internal_node_host(cloud, node_name):
    host = f"{node_name}.{cloud.headless_service_name()}.{cloud.namespace}"
    kube_domain = cloud.spec.solr_addressability.kube_domain
    if kube_domain:
        host += f".svc.{kube_domain}"
    return host


def advertised_node_host(cloud, node_name):
    """Host a node registers itself under, e.g. for ``$(POD_HOSTNAME)``."""
    if uses_external_address(cloud):
        return external_node_host(cloud, node_name, external_options(cloud).all_domains()[0])
    return internal_node_host(cloud, node_name)


def _ingress_rule(host, service_name, port):
    return client.V1IngressRule(
        host=host,
        http=client.V1HTTPIngressRuleValue(
            paths=[
                client.V1HTTPIngressPath(
                    path_type="ImplementationSpecific",
                    backend=client.V1IngressBackend(
                        service=client.V1IngressServiceBackend(
                            name=service_name,
                            port=client.V1ServiceBackendPort(number=port),
                        )
                    ),
                )
            ]
        ),
    )


def create_ingress_rules(cloud, node_names, domain_names):
    """Build the common and per-node ingress rules.

    One common rule per domain unless the common endpoint is hidden, then one
    rule per (node, domain) pair unless the nodes are hidden.

    Returns:
        Tuple of (rules, hosts) in the same order
    """
    ext = external_options(cloud)
    rules = []

    if not ext.hide_common:
        for domain_name in domain_names:
            rules.append(
                _ingress_rule(
                    external_common_host(cloud, domain_name),
                    cloud.common_service_name(),
                    cloud.spec.solr_addressability.common_service_port,
                )
            )

    if not ext.hide_nodes:
        port = node_port(cloud)
        for node_name in node_names:
            for domain_name in domain_names:
                rules.append(
                    _ingress_rule(external_node_host(cloud, node_name, domain_name), node_name, port)
                )

    return rules, [rule.host for rule in rules]


def create_ingress_tls(cloud, hosts):
    """TLS sections for the ingress: the Solr certificate and a termination secret."""
    ingress_tls = []
    tls = cloud.spec.solr_tls
    if tls is not None and tls.pkcs12_secret is not None:
        ingress_tls.append(client.V1IngressTLS(secret_name=tls.pkcs12_secret.name))

    termination_secret = external_options(cloud).ingress_tls_termination_secret
    if termination_secret:
        ingress_tls.append(client.V1IngressTLS(secret_name=termination_secret, hosts=list(hosts)))
    return ingress_tls


def ingress_annotations(cloud, annotations, fronted_by_tls):
    """Add nginx backend protocol and ssl redirect without overriding user values."""
    annotations = dict(annotations or {})
    backend_protocol = "HTTPS" if cloud.spec.solr_tls is not None else "HTTP"
    annotations.setdefault(crd.INGRESS_BACKEND_PROTOCOL_ANNOTATION, backend_protocol)
    if fronted_by_tls:
        annotations.setdefault(crd.INGRESS_SSL_REDIRECT_ANNOTATION, "true")
    return annotations


def external_dns_annotations(cloud, hidden):
    """ExternalDNS hostname annotation for a service, or None.

    Args:
        cloud: The SolrCloud
        hidden: Whether the endpoint behind the service is hidden
    """
    if not uses_external_dns(cloud) or hidden:
        return None
    domains = external_options(cloud).all_domains()
    if not domains:
        logger.warning(f"SolrCloud {cloud.name} uses ExternalDNS without a domain name")
        return None
    hosts = [external_dns_domain(cloud, d) for d in domains]
    return {crd.EXTERNAL_DNS_HOSTNAME_ANNOTATION: ",".join(hosts)}
