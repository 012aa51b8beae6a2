from ddnsd.cli import main

main()
