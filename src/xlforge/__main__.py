from xlforge.cli import main

main()
