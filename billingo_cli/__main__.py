from billingo_cli.cli import main

main()
