from fileferry.app import main

main()
