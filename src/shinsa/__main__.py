from shinsa.cli import main

main()
