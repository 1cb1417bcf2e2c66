from wsp.cli.app import main

main()
