"""
Cluster Maintenance Module

This package implements the operations the operator runs against a live
cluster.

Key Features:
- Node readiness and role classification from taints and labels
- Idempotency markers stored in ConfigMaps
- Host tasks: node-pinned privileged pods with log classification
- Ordered purge of departed nodes from Ceph, etcd and kubeadm metadata
- Ceph pool replication matched to cluster size
- Certificate rotation, internal load balancer sync and CSR approval
"""
