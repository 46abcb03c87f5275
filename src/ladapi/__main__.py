from ladapi.cli import main

main()
