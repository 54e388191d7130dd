"""Command line tool for kube-inventory."""
