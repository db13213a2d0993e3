from kube_janitor.cli import main

main()
