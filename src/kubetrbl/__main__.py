from kubetrbl.cli import main

main()
