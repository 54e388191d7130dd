"""Run the kube-inventory command line tool with `python -m kube_inventory`."""

from kube_inventory.tool.kube_inventory import main

if __name__ == "__main__":
    main()
