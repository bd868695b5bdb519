from pkgsync.cli import main

main()
