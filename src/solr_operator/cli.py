#!/usr/bin/env python3
"""
SolrCloud CLI

Render the Kubernetes objects the operator derives for a SolrCloud manifest,
and inspect SolrCloud resources in a cluster.
"""

import argparse
import json
import random
import sys

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from . import crd
from .exceptions import SolrOperatorError
from .models import SolrCloud, SolrCloudStatus
from .templates import generate_artifacts


def load_kubeconfig():
    """Load Kubernetes configuration."""
    try:
        config.load_incluster_config()
        return True
    except config.ConfigException:
        try:
            config.load_kube_config()
            return True
        except Exception as e:
            print(f"Error loading Kubernetes config: {e}", file=sys.stderr)
            return False


def load_solrcloud(path):
    """Read a SolrCloud manifest from a file, or stdin for '-'."""
    if path == "-":
        manifest = yaml.safe_load(sys.stdin)
    else:
        with open(path) as f:
            manifest = yaml.safe_load(f)
    if not isinstance(manifest, dict) or manifest.get("kind") != crd.KIND:
        raise ValueError(f"{path} does not contain a {crd.KIND} manifest")
    metadata = manifest.get("metadata") or {}
    return (
        SolrCloud.from_resource(
            metadata.get("name"),
            metadata.get("namespace") or "default",
            manifest.get("spec"),
            metadata,
        ),
        SolrCloudStatus.model_validate(manifest.get("status") or {}),
    )


def render(path, seed=None):
    """Generate the manifests for the SolrCloud in ``path``."""
    cloud, status = load_solrcloud(path)
    random_source = random.Random(seed) if seed is not None else None
    return generate_artifacts(cloud, status, random_source=random_source).to_manifests()


def cmd_render(args):
    """Print the objects derived for a SolrCloud manifest."""
    try:
        manifests = render(args.file, args.seed)
    except (ValidationError, SolrOperatorError, ValueError) as e:
        print(f"✗ Invalid SolrCloud: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"✗ Could not read {args.file}: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output == "json":
        print(json.dumps(manifests, indent=2))
    else:
        print(yaml.safe_dump_all(manifests, sort_keys=False), end="")


def cmd_get(args):
    """Get SolrCloud status."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    try:
        cloud = custom_api.get_namespaced_custom_object(
            group=crd.GROUP,
            version=crd.VERSION,
            namespace=args.namespace,
            plural=crd.PLURAL,
            name=args.name,
        )

        if args.output == "json":
            print(json.dumps(cloud, indent=2))
        else:
            spec = cloud.get("spec", {})
            status = cloud.get("status", {})
            zk = status.get("zookeeperConnectionInfo", {})

            print(f"SolrCloud: {args.name}")
            print(f"Namespace: {args.namespace}")
            print(f"\nSpec:")
            print(f"  Replicas: {spec.get('replicas', crd.DEFAULT_REPLICAS)}")
            image = spec.get("solrImage", {})
            print(
                f"  Image: {image.get('repository', crd.DEFAULT_SOLR_REPOSITORY)}"
                f":{image.get('tag', crd.DEFAULT_SOLR_TAG)}"
            )
            print(f"  TLS: {'enabled' if spec.get('solrTLS') else 'disabled'}")
            print(f"  Security: {'enabled' if spec.get('solrSecurity') else 'disabled'}")

            print(f"\nStatus:")
            print(f"  Message: {status.get('message', 'N/A')}")
            if zk:
                print(f"  ZooKeeper: {zk.get('internalConnectionString', '')}{zk.get('chroot', '')}")
            if status.get("internalCommonAddress"):
                print(f"  Address: {status.get('internalCommonAddress')}")

    except ApiException as e:
        if e.status == 404:
            print(f"✗ SolrCloud '{args.name}' not found", file=sys.stderr)
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_list(args):
    """List SolrClouds."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    try:
        if args.namespace:
            response = custom_api.list_namespaced_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                namespace=args.namespace,
                plural=crd.PLURAL,
            )
        else:
            response = custom_api.list_cluster_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                plural=crd.PLURAL,
            )

        items = response.get("items", [])
        if not items:
            print("No SolrClouds found.")
            return

        print(f"{'NAME':<30} {'NAMESPACE':<20} {'REPLICAS':<10} {'MESSAGE':<30}")
        print("-" * 90)

        for item in items:
            metadata = item.get("metadata", {})
            spec = item.get("spec", {})
            status = item.get("status", {})

            name = metadata.get("name", "N/A")
            namespace = metadata.get("namespace", "N/A")
            replicas = spec.get("replicas", crd.DEFAULT_REPLICAS)
            message = status.get("message", "Unknown")

            print(f"{name:<30} {namespace:<20} {replicas:<10} {message:<30}")

    except ApiException as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)


def build_parser():
    parser = argparse.ArgumentParser(
        description="SolrCloud CLI - Render and inspect SolrCloud resources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render the objects for a SolrCloud manifest
  %(prog)s render -f solrcloud.yaml

  # Render with reproducible generated credentials
  %(prog)s render -f solrcloud.yaml --seed 42 -o json

  # Get SolrCloud details
  %(prog)s get example -n solr

  # List all SolrClouds
  %(prog)s list
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Render command
    render_parser = subparsers.add_parser("render", help="Render objects for a SolrCloud manifest")
    render_parser.add_argument(
        "--file", "-f", required=True, help="SolrCloud manifest file ('-' for stdin)"
    )
    render_parser.add_argument(
        "--output", "-o", choices=["yaml", "json"], default="yaml", help="Output format"
    )
    render_parser.add_argument(
        "--seed", type=int, help="Seed for generated credentials (for testing only)"
    )
    render_parser.set_defaults(func=cmd_render)

    # Get command
    get_parser = subparsers.add_parser("get", help="Get SolrCloud details")
    get_parser.add_argument("name", help="SolrCloud name")
    get_parser.add_argument(
        "--namespace", "-n", default="default", help="Kubernetes namespace"
    )
    get_parser.add_argument(
        "--output", "-o", choices=["text", "json"], default="text", help="Output format"
    )
    get_parser.set_defaults(func=cmd_get)

    # List command
    list_parser = subparsers.add_parser("list", help="List SolrClouds")
    list_parser.add_argument(
        "--namespace", "-n", help="Filter by namespace (all namespaces if not specified)"
    )
    list_parser.set_defaults(func=cmd_list)

    return parser


def main(argv=None):
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
